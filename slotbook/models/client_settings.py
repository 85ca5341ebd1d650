"""Per-client booking policy definitions."""

import uuid

from sqlalchemy import Column, ForeignKey, Integer, String

from slotbook.database import Base

DEFAULT_APPOINTMENT_DURATION_MINUTES = 30
DEFAULT_BUFFER_TIME_MINUTES = 15
DEFAULT_MAX_BOOKINGS_PER_DAY = 10
DEFAULT_MIN_NOTICE_HOURS = 24
DEFAULT_MAX_ADVANCE_DAYS = 30


class ClientSettings(Base):
    """Duration, buffer, notice and cap parameters consumed by every booking policy."""
    __tablename__ = "client_settings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, unique=True)
    appointment_duration_minutes = Column(Integer, nullable=False, default=DEFAULT_APPOINTMENT_DURATION_MINUTES)
    buffer_time_minutes = Column(Integer, nullable=False, default=DEFAULT_BUFFER_TIME_MINUTES)
    max_bookings_per_day = Column(Integer, nullable=False, default=DEFAULT_MAX_BOOKINGS_PER_DAY)
    min_notice_hours = Column(Integer, nullable=False, default=DEFAULT_MIN_NOTICE_HOURS)
    max_advance_days = Column(Integer, nullable=False, default=DEFAULT_MAX_ADVANCE_DAYS)

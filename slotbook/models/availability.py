"""Weekly availability rule definitions."""

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Time, UniqueConstraint

from slotbook.database import Base


class AvailabilityRule(Base):
    """Working hours for one weekday (Monday=0 ... Sunday=6) of a client."""
    __tablename__ = "availability_rules"
    __table_args__ = (
        UniqueConstraint("client_id", "day_of_week", name="uq_availability_rules_client_day"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)

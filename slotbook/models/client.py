"""Client business model definitions."""

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String

from slotbook.database import Base

DEFAULT_TIMEZONE = "America/New_York"


class Client(Base):
    """A business with its own public booking page."""
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    agency_id = Column(String(36), ForeignKey("agencies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    booking_slug = Column(String, unique=True, index=True, nullable=False)
    email = Column(String)
    phone = Column(String)
    timezone = Column(String, nullable=False, default=DEFAULT_TIMEZONE)
    is_active = Column(Boolean, nullable=False, default=True)
    # Bumped by every committed booking; the booking transaction locks this row.
    booking_version = Column(Integer, nullable=False, default=0)

"""Operator user model definitions."""

import uuid

from sqlalchemy import Column, ForeignKey, String

from slotbook.database import Base

OPERATOR_ROLES = ("agency_owner", "client_admin", "staff")


class User(Base):
    """An agency operator authenticated by an external identity provider."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(String, nullable=False, default="staff")  # agency_owner/client_admin/staff
    agency_id = Column(String(36), ForeignKey("agencies.id"), nullable=False, index=True)

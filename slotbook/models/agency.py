"""Agency model definitions."""

import uuid

from sqlalchemy import Column, String

from slotbook.database import Base


class Agency(Base):
    """An agency account that manages one or more client businesses."""
    __tablename__ = "agencies"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String, nullable=False)

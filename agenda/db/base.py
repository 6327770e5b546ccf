from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    # Appointment instants are owner-local wall clock values (no tz offset).
    type_annotation_map = {
        datetime: DateTime(timezone=False),
    }

"""SQLAlchemy ORM models for Authgate.

    from authgate.models import Base, User
"""

from authgate.models.base import Base, TimestampMixin
from authgate.models.user import User

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
]

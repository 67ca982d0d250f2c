"""SQLAlchemy models."""
from models.base import Base, TimestampMixin, UUIDv7Mixin
from models.document_version import DocumentVersion
from models.user import User

__all__ = [
    "Base",
    "DocumentVersion",
    "TimestampMixin",
    "UUIDv7Mixin",
    "User",
]

"""Database access for intended extension records."""

from .extensions import RecordRepository, SqlExtensionRepository
from .models import Base, ExtensionRow

__all__ = ["Base", "ExtensionRow", "RecordRepository", "SqlExtensionRepository"]

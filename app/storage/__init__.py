"""Folio storage package.

    from app.storage import Repository, StorageError, UniqueViolation
"""

from app.storage.protocol import (
    SOFT_DELETE_TABLES,
    Repository,
    StorageError,
    UniqueViolation,
)

__all__ = [
    "SOFT_DELETE_TABLES",
    "Repository",
    "StorageError",
    "UniqueViolation",
]

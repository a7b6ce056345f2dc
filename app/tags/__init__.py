"""Owner-scoped tags."""

from app.tags.service import TagService

__all__ = ["TagService"]

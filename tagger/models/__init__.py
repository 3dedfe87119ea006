"""Database models."""
from tagger.models.base import Base, Database
from tagger.models.session import LoginSession  # noqa: F401 - for metadata
from tagger.models.user import User  # noqa: F401 - for metadata

__all__ = [
    "Base",
    "Database",
    "LoginSession",
    "User",
]

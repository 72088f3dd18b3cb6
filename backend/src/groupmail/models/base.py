"""Base SQLAlchemy declarative base for all models"""

from enum import Enum

from sqlalchemy.orm import declarative_base
from sqlalchemy import TypeDecorator, JSON
from sqlalchemy.dialects.postgresql import JSONB


class PortableJSONB(TypeDecorator):
    """JSON type that works with both PostgreSQL (JSONB) and SQLite (JSON).

    Uses JSONB on PostgreSQL for efficient indexing and querying,
    falls back to JSON on SQLite for testing compatibility.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(JSONB())
        else:
            return dialect.type_descriptor(JSON())


class ContentStatus(str, Enum):
    """Lifecycle status shared by every version of a Group or Post.

    Exactly one version per logical id is PUBLISHED at a time.
    """
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"
    DRAFT = "DRAFT"
    DELETED = "DELETED"


class MemberRole(str, Enum):
    ADMIN = "ADMIN"
    FOLLOWER = "FOLLOWER"


class ActivityAction(str, Enum):
    CREATE = "CREATE"
    EDIT = "EDIT"


def normalize_slug(value):
    """Lower-case a slug, turn spaces into dashes and drop dots."""
    if value is None:
        return value
    return value.strip().lower().replace(" ", "-").replace(".", "")


Base = declarative_base()

"""Group model - a named discussion space reached through slug@MAIL_DOMAIN"""

import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
    func,
    text as sql_text,
)
from sqlalchemy.orm import validates

from .base import Base, PortableJSONB, ContentStatus, normalize_slug


class Group(Base):
    """
    Group model - one row per version.

    All versions of a group share a logical id (`group_id`), which equals the
    row id of the first version. Edits never mutate a row's content: they
    archive the current row and insert a new version (see domain.versioning).

    Constraints:
        - At most one PUBLISHED row per group_id
        - At most one PUBLISHED row per slug
    """
    __tablename__ = "groups"

    # Name of the column holding the logical id shared by all versions
    LOGICAL_ID = "group_id"

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(
        Integer,
        ForeignKey("groups.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    version = Column(Integer, nullable=False, default=1)
    status = Column(String(16), nullable=False, default=ContentStatus.PUBLISHED.value)
    uuid = Column(String(36), nullable=False, default=lambda: str(uuid.uuid4()))
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    slug = Column(String(255), nullable=False)
    name = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    tags = Column(PortableJSONB, nullable=True)
    settings = Column(PortableJSONB, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('PUBLISHED', 'ARCHIVED', 'DRAFT', 'DELETED')",
            name='ck_groups_status',
        ),
        Index(
            'uq_groups_published_version',
            'group_id',
            unique=True,
            postgresql_where=sql_text("status = 'PUBLISHED'"),
            sqlite_where=sql_text("status = 'PUBLISHED'"),
        ),
        Index(
            'uq_groups_published_slug',
            'slug',
            unique=True,
            postgresql_where=sql_text("status = 'PUBLISHED'"),
            sqlite_where=sql_text("status = 'PUBLISHED'"),
        ),
        Index('ix_groups_slug_status', 'slug', 'status'),
    )

    @validates('slug')
    def validate_slug(self, key, value):
        value = normalize_slug(value)
        if not value:
            raise ValueError("Group slug cannot be empty")
        return value

    @property
    def logical_id(self):
        return self.group_id or self.id

    @property
    def path(self) -> str:
        return f"/{self.slug}"

    def __repr__(self):
        return (
            f"<Group(id={self.id}, group_id={self.group_id}, slug='{self.slug}', "
            f"version={self.version}, status={self.status})>"
        )

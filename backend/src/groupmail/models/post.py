"""Post model - a message within a group, one row per version"""

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


class Post(Base):
    """
    Post model - versioned like Group.

    `post_id` is the logical id shared by every version and equals the row id
    of the first version. `parent_post_id` points at the logical id of the
    thread root; root posts have no parent and threads never nest deeper
    than one level.

    `email_message_id` keeps the Message-Id of the inbound email so that
    redelivery is detected and replies can be threaded. `email_json` keeps
    the normalized inbound payload so bodies can be re-sanitized later.
    """
    __tablename__ = "posts"

    LOGICAL_ID = "post_id"

    id = Column(Integer, primary_key=True, autoincrement=True)
    post_id = Column(
        Integer,
        ForeignKey("posts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    version = Column(Integer, nullable=False, default=1)
    status = Column(String(16), nullable=False, default=ContentStatus.PUBLISHED.value)
    uuid = Column(String(36), nullable=False, default=lambda: str(uuid.uuid4()))

    # Logical id of the group (Group.group_id)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    # Logical id of the thread root (Post.post_id)
    parent_post_id = Column(
        Integer,
        ForeignKey("posts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    slug = Column(String(255), nullable=False)
    title = Column(Text, nullable=True)
    html = Column(Text, nullable=True)
    text = Column(Text, nullable=True)
    email_message_id = Column(String(998), nullable=True, index=True)
    email_json = Column(PortableJSONB, nullable=True)

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
            name='ck_posts_status',
        ),
        Index(
            'uq_posts_published_version',
            'post_id',
            unique=True,
            postgresql_where=sql_text("status = 'PUBLISHED'"),
            sqlite_where=sql_text("status = 'PUBLISHED'"),
        ),
        Index(
            'uq_posts_published_slug',
            'slug',
            unique=True,
            postgresql_where=sql_text("status = 'PUBLISHED'"),
            sqlite_where=sql_text("status = 'PUBLISHED'"),
        ),
        Index('ix_posts_group_parent_status', 'group_id', 'parent_post_id', 'status'),
    )

    @validates('slug')
    def validate_slug(self, key, value):
        return normalize_slug(value) or "post"

    @property
    def logical_id(self):
        return self.post_id or self.id

    @property
    def is_reply(self) -> bool:
        return self.parent_post_id is not None

    @property
    def thread_id(self):
        """Logical id of the thread this post belongs to."""
        return self.parent_post_id or self.logical_id

    def to_dict(self):
        return {
            "id": self.id,
            "post_id": self.logical_id,
            "parent_post_id": self.parent_post_id,
            "group_id": self.group_id,
            "version": self.version,
            "status": self.status,
            "slug": self.slug,
            "title": self.title,
            "html": self.html,
            "text": self.text,
        }

    def __repr__(self):
        return (
            f"<Post(id={self.id}, post_id={self.post_id}, parent={self.parent_post_id}, "
            f"version={self.version}, status={self.status})>"
        )

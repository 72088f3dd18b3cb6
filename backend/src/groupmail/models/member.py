"""Member model - (user, group|post, role) join rows"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Index,
    func,
    text as sql_text,
)
from sqlalchemy.orm import relationship

from .base import Base


class Member(Base):
    """Membership of a user in a group or in a thread.

    Targets are logical ids (Group.group_id or Post.post_id) so memberships
    survive new versions of their target. Exactly one of group_id/post_id
    is set. Rows are created with find-or-create semantics; one partial unique
    index per target kind backs that up.
    """
    __tablename__ = "members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=True)
    role = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship("User")

    __table_args__ = (
        CheckConstraint("role IN ('ADMIN', 'FOLLOWER')", name='ck_members_role'),
        CheckConstraint(
            "(group_id IS NULL AND post_id IS NOT NULL) OR "
            "(group_id IS NOT NULL AND post_id IS NULL)",
            name='ck_members_single_target',
        ),
        Index(
            'uq_members_group_role',
            'user_id', 'group_id', 'role',
            unique=True,
            postgresql_where=sql_text("post_id IS NULL"),
            sqlite_where=sql_text("post_id IS NULL"),
        ),
        Index(
            'uq_members_post_role',
            'user_id', 'post_id', 'role',
            unique=True,
            postgresql_where=sql_text("group_id IS NULL"),
            sqlite_where=sql_text("group_id IS NULL"),
        ),
        Index('ix_members_group_role', 'group_id', 'role'),
        Index('ix_members_post_role', 'post_id', 'role'),
    )

    def __repr__(self):
        target = f"group_id={self.group_id}" if self.group_id else f"post_id={self.post_id}"
        return f"<Member(id={self.id}, user_id={self.user_id}, {target}, role={self.role})>"

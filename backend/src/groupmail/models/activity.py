"""Activity SQLAlchemy model"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint, Index, func

from .base import Base, PortableJSONB


class Activity(Base):
    """Activity model for the append-only audit trail.

    One row per CREATE/EDIT of a Group or Post version.
    Entries are append-only and should never be updated or deleted.
    """
    __tablename__ = "activities"
    __table_args__ = (
        CheckConstraint("action IN ('CREATE', 'EDIT')", name='ck_activities_action'),
        Index("ix_activities_group_id", "group_id"),
        Index("ix_activities_post_id", "post_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String(16), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    group_id = Column(Integer, nullable=True)
    post_id = Column(Integer, nullable=True)
    target_uuid = Column(String(36), nullable=True)
    metadata_json = Column(PortableJSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def to_dict(self):
        """Convert activity entry to dictionary representation"""
        return {
            "id": self.id,
            "action": self.action,
            "user_id": self.user_id,
            "group_id": self.group_id,
            "post_id": self.post_id,
            "target_uuid": self.target_uuid,
            "metadata": self.metadata_json,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

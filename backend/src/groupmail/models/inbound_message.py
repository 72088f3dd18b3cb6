"""InboundMessage model - one row per processed inbound email"""

from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint, func

from .base import Base


class InboundMessage(Base):
    """Processed inbound email, keyed by Message-Id.

    Posts keep the Message-Id they were created from, but many emails write
    no post (follow/unfollow, "introduce me", bootstrap, subject only).
    Recording every processed message here lets redelivery of those be
    detected as well.
    """
    __tablename__ = "inbound_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(998), nullable=False)
    group_slug = Column(String(255), nullable=True)
    action = Column(String(16), nullable=False)
    # Logical id of the post written, if any
    post_id = Column(Integer, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('message_id', name='uq_inbound_messages_message_id'),
    )

    def __repr__(self):
        return f"<InboundMessage(id={self.id}, message_id='{self.message_id}', action={self.action})>"

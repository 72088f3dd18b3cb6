"""Duplicate Detector - gate on the inbound Message-Id."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..errors import DuplicateMessage
from ..infrastructure.repositories import InboundMessageRepository, PostRepository

logger = logging.getLogger(__name__)


class DuplicateDetector:
    """A message id is processed when any Post row (any version or status)
    stores it, or when it was recorded as an inbound message that wrote no post.
    """

    def __init__(self, db: Session):
        self.posts = PostRepository(db)
        self.messages = InboundMessageRepository(db)

    def is_duplicate(self, message_id: str) -> bool:
        return self.posts.message_id_exists(message_id) or self.messages.exists(message_id)

    def ensure_new(self, message_id: str) -> None:
        """Raises DuplicateMessage when the message id was already processed."""
        if self.is_duplicate(message_id):
            logger.info(f"Skipping already processed message {message_id}", extra={"message_id": message_id})
            raise DuplicateMessage(message_id)

    def mark_processed(
        self,
        message_id: str,
        action: str,
        group_slug: Optional[str] = None,
        post_id: Optional[int] = None,
    ) -> None:
        """Record the message id in the same transaction as its effects."""
        self.messages.record(message_id, action, group_slug=group_slug, post_id=post_id)

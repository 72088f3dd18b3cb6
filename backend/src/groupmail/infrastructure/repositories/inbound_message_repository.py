"""Inbound message repository for database operations"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import PersistenceError
from ...models.inbound_message import InboundMessage


class InboundMessageRepository:
    """Repository for inbound_messages table operations."""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, message_id: str) -> bool:
        query = select(InboundMessage.id).where(InboundMessage.message_id == message_id).limit(1)
        return self.db.execute(query).first() is not None

    def record(
        self,
        message_id: str,
        action: str,
        group_slug: Optional[str] = None,
        post_id: Optional[int] = None,
    ) -> InboundMessage:
        """Mark a message id as processed.

        Raises:
            PersistenceError: If the store rejects the insert (e.g. a
                concurrent delivery of the same message)
        """
        try:
            message = InboundMessage(
                message_id=message_id,
                action=action,
                group_slug=group_slug,
                post_id=post_id,
            )
            self.db.add(message)
            self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not record message {message_id}: {e}") from e
        return message

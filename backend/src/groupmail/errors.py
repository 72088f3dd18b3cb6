"""Error taxonomy for the inbound email pipeline.

InvalidPayload   - malformed or missing routing data; raised before any write.
PersistenceError - a storage write failed; the message is not marked processed.
NotFound         - a referenced group/post/member is missing; callers turn it
                   into a user-facing explanation rather than a hard failure.
DuplicateMessage - the message id was already processed; not an error, the
                   pipeline reports success without side effects.
ActionTokenError - an action link token is expired or tampered with.
"""


class GroupmailError(Exception):
    """Base class for all pipeline errors."""
    pass


class InvalidPayload(GroupmailError):
    """Raised when an inbound payload lacks required routing data."""
    pass


class PersistenceError(GroupmailError):
    """Raised when the store rejects a write."""
    pass


class NotFound(GroupmailError):
    """Raised when an action references a target that does not exist."""
    pass


class DuplicateMessage(GroupmailError):
    """Raised internally when a message id has already been processed."""

    def __init__(self, message_id: str):
        super().__init__(f"Message {message_id} already processed")
        self.message_id = message_id


class ActionTokenError(GroupmailError):
    """Raised when an action link carries an expired or invalid token."""
    pass

"""Request ID management for log correlation.

HTTP requests get a generated (or client-supplied) id; inbound emails are
correlated by their Message-Id so every log line of one pipeline run
carries it.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

# Context variable for request_id (async-safe)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID.

    Returns:
        str: UUID v4 request ID
    """
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Get current request ID from context.

    Returns:
        str: Current request ID or "no-request-id" if not set
    """
    return request_id_var.get() or "no-request-id"


def set_request_id(request_id: str):
    """Set request ID in current context.

    Returns:
        Token that restores the previous value via reset_request_id()
    """
    return request_id_var.set(request_id)


def reset_request_id(token) -> None:
    request_id_var.reset(token)

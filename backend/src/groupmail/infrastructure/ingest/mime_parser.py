"""MIME parser for SMTP ingest.

Turns raw MIME bytes into the same InboundEmail payload the webhook
produces. Attachments are ignored; only the first text/html and
text/plain bodies are kept.
"""

import email
import email.policy
import logging
from email.message import EmailMessage
from typing import Optional, Tuple

from ...domain.email.payload import InboundEmail

logger = logging.getLogger(__name__)


def parse_mime_message(raw_mime: bytes) -> EmailMessage:
    """Parse raw MIME bytes into an EmailMessage.

    Raises:
        ValueError: If MIME parsing fails
    """
    try:
        return email.message_from_bytes(raw_mime, policy=email.policy.default)
    except (TypeError, ValueError, LookupError) as e:
        logger.error(f"Failed to parse MIME message: {e}")
        raise ValueError(f"Invalid MIME message: {e}")


def _part_content(part) -> Optional[str]:
    try:
        content = part.get_content()
    except (LookupError, ValueError) as e:
        # Unknown charset or broken transfer encoding
        logger.warning(f"Could not decode {part.get_content_type()} part: {e}")
        payload = part.get_payload(decode=True) or b""
        content = payload.decode("utf-8", errors="replace")
    return content if isinstance(content, str) else None


def extract_bodies(msg: EmailMessage) -> Tuple[Optional[str], Optional[str]]:
    """Return (html, text) bodies, skipping attachments."""
    html = None
    text = None
    for part in msg.walk():
        if part.get_content_maintype() == "multipart":
            continue
        if part.get_content_disposition() == "attachment":
            continue
        content_type = part.get_content_type()
        if content_type == "text/html" and html is None:
            html = _part_content(part)
        elif content_type == "text/plain" and text is None:
            text = _part_content(part)
    return html, text


def _header(msg: EmailMessage, name: str) -> Optional[str]:
    value = msg.get(name)
    return str(value) if value is not None else None


def to_inbound_email(msg: EmailMessage, envelope_to: Optional[str] = None) -> InboundEmail:
    """Build an InboundEmail from a parsed message.

    The envelope recipient is used when the message has no To header
    (Bcc delivery).
    """
    html, text = extract_bodies(msg)
    return InboundEmail(
        from_=_header(msg, "From"),
        to=_header(msg, "To") or envelope_to,
        cc=_header(msg, "Cc"),
        subject=_header(msg, "Subject"),
        message_id=_header(msg, "Message-ID"),
        in_reply_to=_header(msg, "In-Reply-To"),
        references=_header(msg, "References"),
        date=_header(msg, "Date"),
        stripped_html=html,
        stripped_text=text,
    )

"""SMTP handler for groupmail email ingestion.

Implements an aiosmtpd handler that accepts mail for the group domain and
runs each message through the inbound pipeline:

    testgroup@domain          -> post to (or create) group "testgroup"
    testgroup+follow@domain   -> follow group "testgroup"

Replies:
    250 - processed, or a duplicate of an already processed message
    550 - malformed message or unknown target (do not retry)
    451 - storage failure (the sending MTA retries later)
"""

import asyncio
import logging
from typing import Callable

from aiosmtpd.smtp import SMTP, Envelope, Session as SMTPSession
from sqlalchemy.orm import Session

from ...errors import InvalidPayload, NotFound, PersistenceError
from ...notifications.ports import EmailSenderPort
from ...services.pipeline import InboundEmailPipeline, PipelineResult
from ..avatars import AvatarLookup
from .mime_parser import parse_mime_message, to_inbound_email

logger = logging.getLogger(__name__)


class GroupmailSMTPHandler:
    """aiosmtpd handler feeding received mail into the inbound pipeline.

    The pipeline is synchronous, so each message is processed in a worker
    thread with its own database session.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        sender: EmailSenderPort,
        domain: str,
        avatars: AvatarLookup = None,
    ):
        """Initialize SMTP handler.

        Args:
            session_factory: Callable returning a new SQLAlchemy Session
            sender: Outbound notification port
            domain: Mail domain the groups live under
            avatars: Optional avatar lookup for new users
        """
        self.session_factory = session_factory
        self.sender = sender
        self.domain = domain.lower()
        self.avatars = avatars

    async def handle_RCPT(
        self,
        server: SMTP,
        session: SMTPSession,
        envelope: Envelope,
        address: str,
        rcpt_options: list,
    ) -> str:
        """Only accept recipients under the group domain."""
        if not address.lower().endswith(f"@{self.domain}"):
            logger.warning(f"Rejecting recipient outside {self.domain}: {address}")
            return "550 not relaying to that domain"
        envelope.rcpt_tos.append(address)
        return "250 OK"

    def process(self, raw_mime: bytes, envelope_to: str) -> PipelineResult:
        msg = parse_mime_message(raw_mime)
        inbound = to_inbound_email(msg, envelope_to=envelope_to)
        db = self.session_factory()
        try:
            pipeline = InboundEmailPipeline(db, self.sender, avatars=self.avatars)
            return pipeline.process(inbound)
        finally:
            db.close()

    async def handle_DATA(
        self,
        server: SMTP,
        session: SMTPSession,
        envelope: Envelope,
    ) -> str:
        """Handle email DATA command (main SMTP handler entry point).

        Returns:
            str: SMTP response code and message
        """
        if not envelope.rcpt_tos:
            logger.warning("Email received with no recipients")
            return "550 No valid recipients"

        logger.info(
            f"Received email: from={envelope.mail_from}, to={envelope.rcpt_tos[0]}, "
            f"size={len(envelope.content)} bytes"
        )

        try:
            result = await asyncio.to_thread(self.process, envelope.content, envelope.rcpt_tos[0])
        except (ValueError, InvalidPayload) as e:
            logger.warning(f"Rejected email from {envelope.mail_from}: {e}")
            return f"550 {e}"
        except NotFound as e:
            logger.info(f"Email from {envelope.mail_from} targets nothing: {e}")
            return f"550 {e}"
        except PersistenceError as e:
            logger.error(f"Storage failure for email from {envelope.mail_from}: {e}")
            return "451 Temporary error, please retry"

        if result.status == "duplicate":
            return "250 Message accepted (duplicate)"
        return "250 Message accepted"

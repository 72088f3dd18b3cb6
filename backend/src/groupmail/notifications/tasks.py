"""Notification delivery worker.

Renders an OutboundEmail with its template and hands it to the outbound
SMTP relay. Transient relay failures are retried with exponential backoff;
the post that triggered the notification is never affected.
"""

import logging
import smtplib
from email.message import EmailMessage
from email.utils import getaddresses, make_msgid
from typing import Any, Dict, List

from celery import shared_task

from ..config import get_settings
from ..observability.metrics import notifications_total
from .ports import OutboundEmail
from .templates import render_text

logger = logging.getLogger(__name__)


def filter_excluded(addresses: List[str], exclude: List[str]) -> List[str]:
    """Drop addresses whose email part appears in `exclude` (case-insensitive)."""
    excluded = {email.lower() for _, email in getaddresses(exclude) if email}
    kept = []
    for address in addresses:
        parsed = getaddresses([address])
        email = parsed[0][1].lower() if parsed else ""
        if email and email not in excluded:
            kept.append(address)
    return kept


def build_message(outbound: OutboundEmail, default_from: str) -> EmailMessage:
    """Render an OutboundEmail into a MIME message ready for the relay."""
    message = EmailMessage()
    message["From"] = outbound.from_addr or default_from
    to = filter_excluded(outbound.to, outbound.exclude)
    cc = filter_excluded(outbound.cc, outbound.exclude)
    if to:
        message["To"] = ", ".join(to)
    if cc:
        message["Cc"] = ", ".join(cc)
    message["Subject"] = outbound.subject

    for name, value in outbound.headers.items():
        message[name] = value
    if "Message-Id" not in message:
        message["Message-Id"] = make_msgid(domain=default_from.rsplit("@", 1)[-1].strip(">"))

    message.set_content(render_text(outbound.template, outbound.data))
    html = outbound.data.get("post", {}).get("html") if outbound.template == "post" else None
    if html:
        message.add_alternative(html, subtype="html")
    return message


@shared_task(bind=True, max_retries=3, name="notifications.deliver")
def deliver_email(self, message: Dict[str, Any]) -> Dict[str, Any]:
    """Deliver one outbound notification through the SMTP relay.

    Args:
        message: OutboundEmail.to_dict()

    Returns:
        Dict with delivery result:
            {"status": "sent" | "skipped", "recipients": int}
    """
    settings = get_settings()
    outbound = OutboundEmail.from_dict(message)
    mime = build_message(outbound, f"{settings.COLLECTIVE_NAME} <no-reply@{settings.group_email_domain}>")

    recipients = filter_excluded(outbound.to + outbound.cc, outbound.exclude)
    if not recipients:
        logger.info(f"No recipients left for {outbound.template} notification, skipping")
        return {"status": "skipped", "recipients": 0}

    try:
        with smtplib.SMTP(settings.SMTP_RELAY_HOST, settings.SMTP_RELAY_PORT, timeout=30) as smtp:
            smtp.send_message(mime)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(
            f"Delivery of {outbound.template} notification failed: {e}",
            exc_info=True,
            extra={"template": outbound.template},
        )
        notifications_total.labels(template=outbound.template, status="failed").inc()
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))

    notifications_total.labels(template=outbound.template, status="sent").inc()
    logger.info(
        f"Delivered {outbound.template} notification to {len(recipients)} recipients",
        extra={"template": outbound.template},
    )
    return {"status": "sent", "recipients": len(recipients)}

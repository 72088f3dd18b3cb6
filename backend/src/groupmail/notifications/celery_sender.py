"""Celery adapter for EmailSenderPort.

send() only enqueues; rendering and SMTP delivery happen in the worker
(notifications.tasks.deliver_email).
"""

import logging
from typing import Any, Dict, List, Optional

from ..observability.metrics import notifications_total
from .ports import EmailSenderPort, OutboundEmail
from .tasks import deliver_email

logger = logging.getLogger(__name__)


class CeleryEmailSender(EmailSenderPort):
    """Queue outbound notifications for background delivery."""

    def send(
        self,
        to: List[str],
        subject: str,
        template: str,
        data: Dict[str, Any],
        cc: Optional[List[str]] = None,
        from_addr: Optional[str] = None,
        exclude: Optional[List[str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        message = OutboundEmail(
            to=list(to),
            subject=subject,
            template=template,
            data=data,
            cc=list(cc or []),
            from_addr=from_addr,
            exclude=list(exclude or []),
            headers=dict(headers or {}),
        )
        deliver_email.delay(message.to_dict())
        notifications_total.labels(template=template, status="queued").inc()
        logger.debug(f"Queued {template} notification to {len(message.to) + len(message.cc)} addresses")

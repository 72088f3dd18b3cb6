"""Inbound email webhook endpoint.

The mail relay posts every email addressed to the platform domain here,
either as JSON or form-encoded fields named after the email headers
(From, To, Cc, Subject, Message-Id, In-Reply-To, References,
stripped-html, stripped-text).
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import get_db
from ..dependencies import get_avatar_lookup, get_email_sender
from ..domain.email.payload import InboundEmail
from ..errors import InvalidPayload
from ..infrastructure.avatars import AvatarLookup
from ..notifications.ports import EmailSenderPort
from ..services.pipeline import InboundEmailPipeline
from .schemas import ErrorResponse, WebhookResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def read_inbound_email(request: Request) -> InboundEmail:
    """Parse a JSON or form-encoded webhook body into an InboundEmail.

    Raises:
        InvalidPayload: If the body is not a mapping of header fields
    """
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            data = await request.json()
        else:
            form = await request.form()
            data = {key: form.getlist(key) for key in form.keys()}
    except ValueError as e:
        raise InvalidPayload(f"Invalid webhook payload: {e}") from e

    if not isinstance(data, dict):
        raise InvalidPayload("Invalid webhook payload: expected an object")
    try:
        return InboundEmail.model_validate(data)
    except ValidationError as e:
        raise InvalidPayload(f"Invalid webhook payload: {e.errors()[0]['msg']}") from e


@router.post(
    "/email",
    response_model=WebhookResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
)
async def receive_email(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sender: EmailSenderPort = Depends(get_email_sender),
    avatars: AvatarLookup = Depends(get_avatar_lookup),
) -> WebhookResponse:
    """Run one inbound email through the pipeline.

    Returns {"status": "ok"} or {"status": "duplicate"}; a payload without
    a usable recipient is rejected with 400 before anything is written.
    """
    email = await read_inbound_email(request)
    pipeline = InboundEmailPipeline(db, sender, settings=settings, avatars=avatars)
    result = await run_in_threadpool(pipeline.process, email)
    return WebhookResponse(status=result.status, redirect=result.redirect)

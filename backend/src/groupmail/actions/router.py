"""Action link endpoints.

Links in outbound email point here with a signed token:

    GET /api/approve?token=...     publish a pending group/post version
    GET /api/follow?token=...      follow a group or a thread
    GET /api/unfollow?token=...    remove a membership
    GET /api/publish?token=...     publish an email held by the mail server

Responses are plain-text explanations or redirects to the affected page.
"""

from typing import Any, Dict, Optional

import jwt
from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..auth.tokens import decode_token
from ..config import Settings, get_settings
from ..database import get_db
from ..dependencies import get_avatar_lookup, get_email_sender, get_mail_server_client
from ..errors import ActionTokenError
from ..infrastructure.avatars import AvatarLookup
from ..infrastructure.mailgun import MailServerClient
from ..notifications.ports import EmailSenderPort
from ..services.pipeline import InboundEmailPipeline
from .service import ActionService, parse_approval_target

router = APIRouter(prefix="/api", tags=["Actions"])


def verify_action_token(token: str, settings: Settings, group_slug: Optional[str] = None) -> Dict[str, Any]:
    """Decode a token or raise ActionTokenError with a message for the user."""
    try:
        return decode_token(token)
    except jwt.ExpiredSignatureError:
        message = "The token has expired."
        if group_slug:
            message += f" Please resend your email to {group_slug}@{settings.group_email_domain}"
        raise ActionTokenError(message)
    except jwt.InvalidTokenError:
        raise ActionTokenError("Invalid token")


@router.get("/approve")
def approve(
    token: str = Query(...),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    payload = verify_action_token(token, settings)
    target = parse_approval_target(payload)
    path = ActionService(db, settings).approve(target, always=bool(payload.get("always")))
    return RedirectResponse(url=path, status_code=302)


@router.get("/follow", response_class=PlainTextResponse)
def follow(
    token: str = Query(...),
    groupSlug: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    payload = verify_action_token(token, settings, groupSlug)
    return ActionService(db, settings).follow(payload)


@router.get("/unfollow", response_class=PlainTextResponse)
def unfollow(
    token: str = Query(...),
    groupSlug: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    payload = verify_action_token(token, settings, groupSlug)
    return ActionService(db, settings).unfollow(payload)


@router.get("/publish")
def publish(
    token: str = Query(...),
    groupSlug: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    sender: EmailSenderPort = Depends(get_email_sender),
    avatars: AvatarLookup = Depends(get_avatar_lookup),
    mail_server: MailServerClient = Depends(get_mail_server_client),
):
    payload = verify_action_token(token, settings, groupSlug or None)
    pipeline = InboundEmailPipeline(db, sender, settings=settings, avatars=avatars)
    path = ActionService(db, settings).publish(payload, mail_server, pipeline)
    return RedirectResponse(url=path, status_code=302)

"""Inbound email pipeline.

One sequential run per inbound message:

    parse headers        (InvalidPayload, no side effects)
    duplicate detector   (short-circuit with "duplicate")
    identity resolver    (sender, then recipients)
    routing action       (follow / unfollow / edit stop here)
    group resolver       (may create the group, may stop)
    thread resolver
    post writer
    notification dispatcher

All writes share one transaction, committed at the end. Notifications are
sent only after the commit; a failing send is logged and never undoes the
post. Every processed message id is recorded, so the duplicate detector
catches a redelivered message. Mail sent by the platform itself is never
reprocessed.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..domain.email.headers import ParsedHeaders, parse_headers
from ..domain.email.payload import InboundEmail
from ..domain.email.sanitizer import html_to_text, sanitize
from ..errors import DuplicateMessage, InvalidPayload, NotFound, PersistenceError
from ..infrastructure.avatars import AvatarLookup
from ..infrastructure.repositories import GroupRepository, PostRepository
from ..models.group import Group
from ..models.post import Post
from ..models.user import User
from ..notifications.ports import EmailSenderPort
from ..observability.metrics import inbound_emails_total, pipeline_duration_seconds, posts_created_total
from ..observability.request_id import reset_request_id, set_request_id
from .dedup import DuplicateDetector
from .groups import GroupResolver
from .identity import IdentityResolver
from .memberships import MembershipService
from .notifications import NotificationDispatcher, Outbox
from .posts import PostWriter
from .threads import ThreadResolver

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outcome of one inbound email.

    Attributes:
        status: "ok" or "duplicate"
        group_slug: Group the email was routed to, when known
        thread_id: Logical id of the thread root the post belongs to
        post_id: Logical id of the post written, if any
    """
    status: str
    group_slug: Optional[str] = None
    thread_id: Optional[int] = None
    post_id: Optional[int] = None

    @property
    def redirect(self) -> str:
        """Path of the page showing the result."""
        if self.group_slug is None:
            return "/"
        if self.thread_id is not None:
            return f"/{self.group_slug}/{self.thread_id}"
        return f"/{self.group_slug}"


@dataclass
class _Body:
    html: str
    text: str

    @property
    def empty(self) -> bool:
        return not self.html


class InboundEmailPipeline:
    """Turn one inbound email into posts, memberships and notifications."""

    def __init__(
        self,
        db: Session,
        sender: EmailSenderPort,
        settings: Optional[Settings] = None,
        avatars: Optional[AvatarLookup] = None,
    ):
        self.db = db
        self.sender = sender
        self.settings = settings or get_settings()
        self.dispatcher = NotificationDispatcher(db, self.settings)
        self.duplicates = DuplicateDetector(db)
        self.identity = IdentityResolver(db, avatars)
        self.memberships = MembershipService(db)
        self.groups = GroupResolver(db, self.settings, self.dispatcher)
        self.threads = ThreadResolver(db)
        self.writer = PostWriter(db)

    def process(self, email: Union[InboundEmail, Dict[str, Any]]) -> PipelineResult:
        """Process one inbound email.

        Returns:
            PipelineResult with status "ok" or "duplicate"

        Raises:
            InvalidPayload: Missing or unusable routing data (nothing written)
            NotFound: An action references a missing or foreign target
            PersistenceError: The store rejected a write (rolled back)
        """
        start = time.time()
        if not isinstance(email, InboundEmail):
            email = InboundEmail.model_validate(email)

        try:
            parsed = parse_headers(email, self.settings.group_email_domain)
        except InvalidPayload as e:
            inbound_emails_total.labels(outcome="invalid").inc()
            logger.warning(f"Rejected inbound email: {e}")
            raise

        token = set_request_id(parsed.message_id)
        try:
            return self._process(email, parsed, start)
        finally:
            reset_request_id(token)

    def _process(self, email: InboundEmail, parsed: ParsedHeaders, start: float) -> PipelineResult:
        outbox = Outbox()
        try:
            result = self._run(email, parsed, outbox)
            self.duplicates.mark_processed(
                parsed.message_id,
                parsed.action,
                group_slug=result.group_slug,
                post_id=result.post_id,
            )
            self.db.commit()
        except DuplicateMessage:
            self.db.rollback()
            inbound_emails_total.labels(outcome="duplicate").inc()
            return PipelineResult(status="duplicate", group_slug=parsed.group_slug)
        except (InvalidPayload, NotFound) as e:
            self.db.rollback()
            outcome = "invalid" if isinstance(e, InvalidPayload) else "not_found"
            inbound_emails_total.labels(outcome=outcome).inc()
            logger.info(f"Inbound email not processed: {e}", extra={"outcome": outcome})
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            inbound_emails_total.labels(outcome="error").inc()
            logger.error(f"Storage failure while processing email: {e}", exc_info=True)
            raise PersistenceError(f"Could not store message {parsed.message_id}") from e
        except PersistenceError:
            self.db.rollback()
            inbound_emails_total.labels(outcome="error").inc()
            logger.error("Storage failure while processing email", exc_info=True)
            raise
        finally:
            pipeline_duration_seconds.observe(time.time() - start)

        outbox.flush(self.sender)
        inbound_emails_total.labels(outcome="ok").inc()
        logger.info(
            f"Processed inbound email for {parsed.group_slug}",
            extra={"group_slug": parsed.group_slug, "outcome": "ok"},
        )
        return result

    def _run(self, email: InboundEmail, parsed: ParsedHeaders, outbox: Outbox) -> PipelineResult:
        logger.info(
            f"Received email from {parsed.sender.email} to {parsed.group_slug} ({parsed.action})",
            extra={"message_id": parsed.message_id, "group_slug": parsed.group_slug},
        )
        self.duplicates.ensure_new(parsed.message_id)
        if parsed.from_platform:
            logger.info(f"Ignoring platform-sent message {parsed.message_id}", extra={"message_id": parsed.message_id})
            raise DuplicateMessage(parsed.message_id)

        sanitized = sanitize(email.stripped_html, email.stripped_text)
        body = _Body(html=sanitized, text=html_to_text(sanitized))

        sender = self.identity.find_or_create(parsed.sender.email, parsed.sender.name)

        if parsed.action in ("follow", "unfollow"):
            return self._membership_action(parsed, sender)
        if parsed.action == "edit":
            return self._edit(email, parsed, sender, body)

        recipients = [self.identity.find_or_create(a.email, a.name) for a in parsed.recipients]
        resolution = self.groups.resolve(parsed, sender, recipients, not body.empty, outbox)
        group = resolution.group

        if not resolution.create_post or body.empty:
            return PipelineResult(status="ok", group_slug=group.slug)

        thread_root = self.threads.resolve(parsed, group)
        is_new_thread = thread_root is None
        post = self.writer.create(
            group,
            sender,
            parsed,
            html=body.html,
            text=body.text,
            thread_root=thread_root,
            recipients=recipients,
            email_json=email.to_payload(),
        )
        thread_root = thread_root or post
        outbox.extend(self.dispatcher.dispatch(
            group,
            post,
            thread_root,
            sender,
            is_new_thread,
            explicit=recipients,
            already_copied=parsed.already_copied,
        ))
        posts_created_total.labels(kind="thread" if is_new_thread else "reply").inc()
        return PipelineResult(
            status="ok",
            group_slug=group.slug,
            thread_id=thread_root.logical_id,
            post_id=post.logical_id,
        )

    def _find_group(self, parsed: ParsedHeaders) -> Group:
        group = GroupRepository(self.db).find_by_slug(parsed.group_slug)
        if group is None:
            raise NotFound(f"Group {parsed.group_slug} not found")
        return group

    def _find_thread_root(self, thread_id: int, group: Group) -> Post:
        posts = PostRepository(self.db)
        post = posts.find_by_logical_id(thread_id)
        if post is not None and post.parent_post_id is not None:
            post = posts.find_by_logical_id(post.parent_post_id)
        if post is None or post.group_id != group.logical_id:
            raise NotFound(f"Thread {thread_id} not found in {group.slug}")
        return post

    def _membership_action(self, parsed: ParsedHeaders, sender: User) -> PipelineResult:
        group = self._find_group(parsed)
        target = {"group_id": group.logical_id}
        thread_id = None
        if parsed.parent_post_id is not None:
            thread_id = self._find_thread_root(parsed.parent_post_id, group).logical_id
            target = {"post_id": thread_id}

        if parsed.action == "follow":
            self.memberships.follow(sender.id, **target)
        else:
            self.memberships.unfollow(sender.id, **target)
        return PipelineResult(status="ok", group_slug=group.slug, thread_id=thread_id)

    def _edit(self, email: InboundEmail, parsed: ParsedHeaders, sender: User, body: _Body) -> PipelineResult:
        post_id = parsed.post_id or parsed.parent_post_id
        if post_id is None:
            raise NotFound("No post to edit in the recipient address")
        if body.empty:
            raise InvalidPayload("Invalid edit: missing body")

        group = self._find_group(parsed)
        current = PostRepository(self.db).find_by_logical_id(post_id)
        if current is None or current.group_id != group.logical_id:
            raise NotFound(f"Post {post_id} not found in {group.slug}")

        new_version = self.writer.edit(
            post_id,
            sender,
            parsed,
            html=body.html,
            text=body.text,
            email_json=email.to_payload(),
        )
        return PipelineResult(
            status="ok",
            group_slug=group.slug,
            thread_id=new_version.thread_id,
            post_id=new_version.logical_id,
        )

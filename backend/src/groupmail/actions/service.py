"""Token action handlers.

Handlers receive the verified token payload and either return a plain
explanation for the user or a path to redirect to. Missing targets raise
NotFound with a user-facing message.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Union

from sqlalchemy.orm import Session

from ..config import Settings
from ..domain import versioning
from ..errors import InvalidPayload, NotFound
from ..infrastructure.mailgun import MailServerClient
from ..infrastructure.repositories import GroupRepository, PostRepository, UserRepository
from ..services.memberships import MembershipService
from ..services.pipeline import InboundEmailPipeline

logger = logging.getLogger(__name__)

ALREADY_SUBSCRIBED = "It looks like you've already subscribed to those notifications"
ALREADY_UNSUBSCRIBED = "It looks like you've already unsubscribed from those notifications"


@dataclass(frozen=True)
class GroupTarget:
    """A group version awaiting approval (row id of the version)."""
    version_id: int


@dataclass(frozen=True)
class PostTarget:
    """A post version awaiting approval (row id of the version)."""
    version_id: int


ApprovalTarget = Union[GroupTarget, PostTarget]


def parse_approval_target(payload: Dict[str, Any]) -> ApprovalTarget:
    """Resolve an approve payload ({type, TargetId}) into a target variant.

    Raises:
        InvalidPayload: If type or TargetId is missing or unknown
    """
    kind = str(payload.get("type") or "").lower()
    target_id = payload.get("TargetId")
    if not isinstance(target_id, int) or isinstance(target_id, bool):
        raise InvalidPayload("Invalid token: TargetId missing")
    if kind == "group":
        return GroupTarget(version_id=target_id)
    if kind == "post":
        return PostTarget(version_id=target_id)
    raise InvalidPayload(f"Invalid token: unknown target type {kind!r}")


def _int_field(payload: Dict[str, Any], name: str):
    value = payload.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidPayload(f"Invalid token: {name} must be an integer")


class ActionService:
    """Execute verified token actions."""

    def __init__(self, db: Session, settings: Settings):
        self.db = db
        self.settings = settings
        self.groups = GroupRepository(db)
        self.posts = PostRepository(db)
        self.users = UserRepository(db)
        self.memberships = MembershipService(db)

    def approve(self, target: ApprovalTarget, always: bool = False) -> str:
        """Publish the targeted version and return the path to show it.

        Raises:
            NotFound: If the version does not exist or can no longer be
                published (e.g. it was deleted)
        """
        if isinstance(target, GroupTarget):
            group = self.groups.get_version(target.version_id)
            if group is None:
                raise NotFound(f"Cannot approve: group {target.version_id} not found")
            self._publish(group, target)
            path = group.path
        else:
            post = self.posts.get_version(target.version_id)
            if post is None:
                raise NotFound(f"Cannot approve: post {target.version_id} not found")
            group = self.groups.find_by_logical_id(post.group_id)
            if group is None:
                raise NotFound(f"Cannot approve: group of post {target.version_id} not found")
            self._publish(post, target)
            path = f"{group.path}/{post.thread_id}"

        self.db.commit()
        logger.info(f"Approved {type(target).__name__} {target.version_id} (always={always})")
        return path

    def _publish(self, version, target: ApprovalTarget) -> None:
        try:
            versioning.publish(self.db, version)
        except versioning.StateTransitionError as e:
            self.db.rollback()
            logger.info(f"Cannot approve {type(target).__name__} {target.version_id}: {e}")
            raise NotFound("This version can no longer be published")

    def follow(self, payload: Dict[str, Any]) -> str:
        """Subscribe a user to a group or a thread.

        Raises:
            InvalidPayload: If the payload names no user or no target
            NotFound: If the user or the target no longer exists
        """
        user_id = _int_field(payload, "UserId")
        group_id = _int_field(payload, "GroupId")
        post_id = _int_field(payload, "PostId")
        if user_id is None or (group_id is None) == (post_id is None):
            raise InvalidPayload("Invalid token: UserId and one of GroupId or PostId are required")

        if self.users.get(user_id) is None:
            raise NotFound("This user no longer exists")
        if group_id is not None and self.groups.find_by_logical_id(group_id) is None:
            raise NotFound("This group no longer exists")
        if post_id is not None and self.posts.find_by_logical_id(post_id) is None:
            raise NotFound("This thread no longer exists")

        result = self.memberships.follow(user_id, group_id=group_id, post_id=post_id)
        if not result.created:
            logger.info(f"Membership already exists: {result.member.id}")
            return ALREADY_SUBSCRIBED
        self.db.commit()
        if post_id is not None:
            return "You have successfully subscribed to future updates to this thread"
        return "You have successfully subscribed to new messages sent to this group"

    def unfollow(self, payload: Dict[str, Any]) -> str:
        member_id = _int_field(payload, "MemberId")
        if member_id is None:
            raise InvalidPayload("Invalid token: MemberId missing")

        member = self.memberships.members.get(member_id)
        if member is None:
            logger.info(f"Cannot find member {member_id} to unfollow")
            return ALREADY_UNSUBSCRIBED
        is_thread = member.post_id is not None
        self.memberships.remove_member(member_id)
        self.db.commit()
        if is_thread:
            return "You have successfully unsubscribed from future updates to this thread"
        return "You have successfully unsubscribed from new messages sent to this group"

    def publish(
        self,
        payload: Dict[str, Any],
        mail_server: MailServerClient,
        pipeline: InboundEmailPipeline,
    ) -> str:
        """Retrieve an email held by the mail server and run it through the pipeline.

        Raises:
            InvalidPayload: If the payload lacks mailServer or messageId
            NotFound: If the mail server no longer has the email
        """
        server = payload.get("mailServer")
        message_id = payload.get("messageId")
        if not server or not message_id:
            raise InvalidPayload("Invalid token: mailServer and messageId are required")

        email = mail_server.fetch(server, message_id)
        result = pipeline.process(email)
        logger.info(f"Published held email {message_id} ({result.status})")
        return result.redirect

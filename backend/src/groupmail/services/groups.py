"""Group Resolver - map the routing slug onto a group, creating it on first use."""

import logging
from dataclasses import dataclass
from typing import List

from sqlalchemy.orm import Session

from ..config import Settings
from ..domain.email.headers import ParsedHeaders
from ..infrastructure.repositories import GroupRepository, MemberRepository
from ..models.base import MemberRole
from ..models.group import Group
from ..models.user import User
from .notifications import NotificationDispatcher, Outbox

logger = logging.getLogger(__name__)


@dataclass
class GroupResolution:
    """Outcome of resolving the target group of an inbound email.

    Attributes:
        group: The resolved (or newly created) group
        created: True when the email created the group
        create_post: False when no post must be written for this email
            (bootstrap template, or an empty "introduce me" email)
    """
    group: Group
    created: bool = False
    create_post: bool = True


class GroupResolver:
    """Resolve, or create, the group an inbound email is addressed to."""

    def __init__(self, db: Session, settings: Settings, dispatcher: NotificationDispatcher):
        self.settings = settings
        self.groups = GroupRepository(db)
        self.members = MemberRepository(db)
        self.dispatcher = dispatcher

    def resolve(
        self,
        parsed: ParsedHeaders,
        sender: User,
        recipients: List[User],
        has_body: bool,
        outbox: Outbox,
    ) -> GroupResolution:
        """Resolve the group for `parsed.group_slug`.

        - Unknown slug: the group is created with the sender as owner; sender
          and recipients become ADMIN and FOLLOWER; "group created" is
          queued for the sender. The bootstrap template email creates no post.
        - Known slug, empty subject and body: sender and recipients follow
          the group and "group info" is queued; no post.
        - Otherwise the existing group is returned.

        Raises:
            PersistenceError: If a write is rejected
        """
        group = self.groups.find_by_slug(parsed.group_slug)
        user_ids = [sender.id] + [u.id for u in recipients]
        # The bootstrap template only ever creates the group
        bootstrap = (parsed.subject or "") == self.settings.BOOTSTRAP_SUBJECT

        if group is None:
            created = self.groups.create(
                actor_id=sender.id,
                slug=parsed.group_slug,
                name=parsed.group_slug,
                tags=parsed.tags or None,
            )
            group = created.entity
            self.members.bulk_find_or_create(
                user_ids,
                [MemberRole.ADMIN, MemberRole.FOLLOWER],
                group_id=created.logical_id,
            )
            outbox.add(self.dispatcher.group_created(group, sender))
            logger.info(
                f"Created group {group.slug} ({created.logical_id})",
                extra={"group_slug": group.slug, "user_id": sender.id},
            )
            return GroupResolution(group=group, created=True, create_post=not bootstrap)

        if not parsed.subject and not has_body:
            self.members.bulk_find_or_create(user_ids, [MemberRole.FOLLOWER], group_id=group.logical_id)
            outbox.add(self.dispatcher.group_info(group, sender, recipients))
            logger.info(
                f"Added {len(user_ids)} followers to group {group.slug}",
                extra={"group_slug": group.slug},
            )
            return GroupResolution(group=group, create_post=False)

        return GroupResolution(group=group, create_post=not bootstrap)

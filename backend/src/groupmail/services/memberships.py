"""Follow / unfollow operations shared by email actions and token links."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from ..infrastructure.repositories import MemberRepository
from ..models.base import MemberRole
from ..models.member import Member

logger = logging.getLogger(__name__)


@dataclass
class FollowResult:
    member: Member
    created: bool


class MembershipService:
    """FOLLOWER rows on a group or on a thread root."""

    def __init__(self, db: Session):
        self.members = MemberRepository(db)

    def follow(self, user_id: int, group_id: Optional[int] = None, post_id: Optional[int] = None) -> FollowResult:
        existing = self.members.find(user_id, MemberRole.FOLLOWER, group_id=group_id, post_id=post_id)
        if existing is not None:
            return FollowResult(member=existing, created=False)
        member = self.members.find_or_create(user_id, MemberRole.FOLLOWER, group_id=group_id, post_id=post_id)
        logger.info(f"User {user_id} now follows {_target(group_id, post_id)}", extra={"user_id": user_id})
        return FollowResult(member=member, created=True)

    def unfollow(self, user_id: int, group_id: Optional[int] = None, post_id: Optional[int] = None) -> bool:
        member = self.members.find(user_id, MemberRole.FOLLOWER, group_id=group_id, post_id=post_id)
        if member is None:
            return False
        self.members.delete(member)
        logger.info(f"User {user_id} unfollowed {_target(group_id, post_id)}", extra={"user_id": user_id})
        return True

    def remove_member(self, member_id: int) -> Optional[Member]:
        """Delete a membership row by id; returns the removed row or None."""
        member = self.members.get(member_id)
        if member is None:
            return None
        self.members.delete(member)
        return member


def _target(group_id: Optional[int], post_id: Optional[int]) -> str:
    return f"group {group_id}" if group_id is not None else f"thread {post_id}"

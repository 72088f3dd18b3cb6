"""Member repository for database operations"""

from typing import Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import PersistenceError
from ...models.base import MemberRole
from ...models.member import Member
from ...models.user import User


def _target_conditions(group_id: Optional[int], post_id: Optional[int]):
    if (group_id is None) == (post_id is None):
        raise ValueError("Exactly one of group_id or post_id must be given")
    if group_id is not None:
        return (Member.group_id == group_id, Member.post_id.is_(None))
    return (Member.post_id == post_id, Member.group_id.is_(None))


class MemberRepository:
    """Repository for members table operations.

    A target is either a group (logical group id) or a thread/post
    (logical post id). Creation is find-or-create, so repeated calls with
    the same (user, target, role) leave a single row.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, member_id: int) -> Optional[Member]:
        return self.db.get(Member, member_id)

    def find(
        self,
        user_id: int,
        role: MemberRole,
        group_id: Optional[int] = None,
        post_id: Optional[int] = None,
    ) -> Optional[Member]:
        query = select(Member).where(
            Member.user_id == user_id,
            Member.role == MemberRole(role).value,
            *_target_conditions(group_id, post_id),
        )
        return self.db.execute(query).scalars().first()

    def find_or_create(
        self,
        user_id: int,
        role: MemberRole,
        group_id: Optional[int] = None,
        post_id: Optional[int] = None,
    ) -> Member:
        """Return the membership row, creating it when absent.

        Raises:
            PersistenceError: If the store rejects the insert
        """
        member = self.find(user_id, role, group_id=group_id, post_id=post_id)
        if member is not None:
            return member
        try:
            member = Member(
                user_id=user_id,
                role=MemberRole(role).value,
                group_id=group_id,
                post_id=post_id,
            )
            self.db.add(member)
            self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not add member {user_id} ({role}): {e}") from e
        return member

    def bulk_find_or_create(
        self,
        user_ids: Iterable[int],
        roles: Iterable[MemberRole],
        group_id: Optional[int] = None,
        post_id: Optional[int] = None,
    ) -> List[Member]:
        roles = list(roles)
        members = []
        for user_id in dict.fromkeys(user_ids):
            for role in roles:
                members.append(self.find_or_create(user_id, role, group_id=group_id, post_id=post_id))
        return members

    def delete(self, member: Member) -> None:
        try:
            self.db.delete(member)
            self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not remove member {member.id}: {e}") from e

    def list_users(
        self,
        role: MemberRole,
        group_id: Optional[int] = None,
        post_id: Optional[int] = None,
    ) -> List[User]:
        """Users holding `role` on the target, in membership order."""
        query = select(User).join(Member, Member.user_id == User.id).where(
            Member.role == MemberRole(role).value,
            *_target_conditions(group_id, post_id),
        ).order_by(Member.id.asc())
        return list(self.db.execute(query).scalars().all())

    def followers(self, group_id: Optional[int] = None, post_id: Optional[int] = None) -> List[User]:
        return self.list_users(MemberRole.FOLLOWER, group_id=group_id, post_id=post_id)

    def count_by_role(
        self,
        role: MemberRole,
        group_id: Optional[int] = None,
        post_id: Optional[int] = None,
    ) -> int:
        query = select(func.count(Member.id)).where(
            Member.role == MemberRole(role).value,
            *_target_conditions(group_id, post_id),
        )
        return self.db.execute(query).scalar() or 0

    def is_admin(self, user_id: int, group_id: Optional[int] = None, post_id: Optional[int] = None) -> bool:
        return self.find(user_id, MemberRole.ADMIN, group_id=group_id, post_id=post_id) is not None

"""Group repository for database operations"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...domain import versioning
from ...errors import PersistenceError
from ...models.base import ContentStatus, normalize_slug
from ...models.group import Group


class GroupRepository:
    """Repository for groups table operations.

    Lookups return the PUBLISHED version when there is one; otherwise the
    most recent non-deleted version.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_slug(self, slug: str) -> Optional[Group]:
        slug = normalize_slug(slug)
        query = select(Group).where(
            Group.slug == slug,
            Group.status == ContentStatus.PUBLISHED.value,
        ).order_by(Group.id.desc())
        group = self.db.execute(query).scalars().first()
        if group is not None:
            return group

        query = select(Group).where(
            Group.slug == slug,
            Group.status != ContentStatus.DELETED.value,
        ).order_by(Group.id.desc())
        return self.db.execute(query).scalars().first()

    def find_by_logical_id(
        self,
        group_id: int,
        status: Optional[ContentStatus] = ContentStatus.PUBLISHED,
    ) -> Optional[Group]:
        query = select(Group).where(Group.group_id == group_id)
        if status is not None:
            query = query.where(Group.status == status.value)
        query = query.order_by(Group.id.desc())
        return self.db.execute(query).scalars().first()

    def get_version(self, row_id: int) -> Optional[Group]:
        return self.db.get(Group, row_id)

    def list_versions(self, group_id: int) -> List[Group]:
        query = select(Group).where(Group.group_id == group_id).order_by(Group.version.desc())
        return list(self.db.execute(query).scalars().all())

    def create(self, actor_id: Optional[int], **fields: Any) -> versioning.Created:
        """Create the first version of a group.

        Raises:
            PersistenceError: If the store rejects the insert
        """
        try:
            return versioning.create_versioned(self.db, Group, actor_id, user_id=actor_id, **fields)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not create group {fields.get('slug')}: {e}") from e

    def update(
        self,
        group: Group,
        changes: Dict[str, Any],
        actor_id: Optional[int],
        status: ContentStatus = ContentStatus.PUBLISHED,
    ) -> Group:
        """Write a new version of the group with `changes` applied."""
        try:
            return versioning.edit(self.db, group, changes, actor_id, status=status)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not update group {group.logical_id}: {e}") from e

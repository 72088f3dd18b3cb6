"""Post repository for database operations"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...domain import versioning
from ...errors import PersistenceError
from ...models.base import ContentStatus
from ...models.post import Post


class PostRepository:
    """Repository for posts table operations.

    Message-id lookups consider every version and status; the most
    recently created row wins.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_logical_id(
        self,
        post_id: int,
        status: Optional[ContentStatus] = ContentStatus.PUBLISHED,
    ) -> Optional[Post]:
        query = select(Post).where(Post.post_id == post_id)
        if status is not None:
            query = query.where(Post.status == status.value)
        query = query.order_by(Post.id.desc())
        return self.db.execute(query).scalars().first()

    def find_by_message_id(self, message_id: str) -> Optional[Post]:
        query = select(Post).where(
            Post.email_message_id == message_id,
        ).order_by(Post.id.desc())
        return self.db.execute(query).scalars().first()

    def message_id_exists(self, message_id: str) -> bool:
        query = select(Post.id).where(Post.email_message_id == message_id).limit(1)
        return self.db.execute(query).first() is not None

    def find_by_slug(self, slug: str) -> Optional[Post]:
        query = select(Post).where(
            Post.slug == slug,
            Post.status == ContentStatus.PUBLISHED.value,
        )
        return self.db.execute(query).scalars().first()

    def get_version(self, row_id: int) -> Optional[Post]:
        return self.db.get(Post, row_id)

    def list_group_posts(
        self,
        group_id: int,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Post], int]:
        """Published thread roots of a group, newest first, with the total count."""
        conditions = (
            Post.group_id == group_id,
            Post.parent_post_id.is_(None),
            Post.status == ContentStatus.PUBLISHED.value,
        )
        total = self.db.execute(select(func.count(Post.id)).where(*conditions)).scalar() or 0
        query = select(Post).where(*conditions).order_by(
            Post.created_at.desc(), Post.id.desc()
        ).limit(limit).offset(offset)
        return list(self.db.execute(query).scalars().all()), total

    def list_replies(self, thread_id: int) -> List[Post]:
        query = select(Post).where(
            Post.parent_post_id == thread_id,
            Post.status == ContentStatus.PUBLISHED.value,
        ).order_by(Post.id.asc())
        return list(self.db.execute(query).scalars().all())

    def list_published(self) -> List[Post]:
        query = select(Post).where(Post.status == ContentStatus.PUBLISHED.value).order_by(Post.id.asc())
        return list(self.db.execute(query).scalars().all())

    def create(
        self,
        actor_id: Optional[int],
        finalize: Optional[Callable[[Post], None]] = None,
        status: ContentStatus = ContentStatus.PUBLISHED,
        **fields: Any,
    ) -> versioning.Created:
        """Create the first version of a post.

        Raises:
            PersistenceError: If the store rejects the insert
        """
        try:
            return versioning.create_versioned(
                self.db, Post, actor_id, status=status, finalize=finalize, **fields
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not create post: {e}") from e

    def update(
        self,
        post: Post,
        changes: Dict[str, Any],
        actor_id: Optional[int],
        status: ContentStatus = ContentStatus.PUBLISHED,
    ) -> Post:
        """Write a new version of the post with `changes` applied."""
        try:
            return versioning.edit(self.db, post, changes, actor_id, status=status)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not update post {post.logical_id}: {e}") from e

"""Post Writer - persist posts and their memberships."""

import logging
from typing import Any, Dict, List, Optional

from slugify import slugify
from sqlalchemy.orm import Session

from ..domain.email.headers import ParsedHeaders
from ..errors import NotFound
from ..infrastructure.repositories import MemberRepository, PostRepository
from ..models.base import MemberRole
from ..models.group import Group
from ..models.post import Post
from ..models.user import User

logger = logging.getLogger(__name__)

SLUG_MAX_LENGTH = 200


def slug_base(title: Optional[str]) -> str:
    return slugify(title or "", max_length=SLUG_MAX_LENGTH, word_boundary=True) or "post"


class PostWriter:
    """Write new posts and new versions of existing posts."""

    def __init__(self, db: Session):
        self.posts = PostRepository(db)
        self.members = MemberRepository(db)

    def create(
        self,
        group: Group,
        sender: User,
        parsed: ParsedHeaders,
        html: str,
        text: str,
        thread_root: Optional[Post],
        recipients: List[User],
        email_json: Optional[Dict[str, Any]] = None,
    ) -> Post:
        """Create a post from an inbound email.

        The logical post id is the row id of the new post; the slug is the
        slugified subject suffixed with that id. The sender becomes ADMIN of
        the post, sender and recipients become FOLLOWERs of the thread root
        (the post itself when it starts a thread).

        Raises:
            PersistenceError: If a write is rejected
        """
        base = slug_base(parsed.subject)

        def finalize(post: Post) -> None:
            post.slug = f"{base}-{post.post_id}"

        created = self.posts.create(
            actor_id=sender.id,
            finalize=finalize,
            group_id=group.logical_id,
            user_id=sender.id,
            parent_post_id=thread_root.logical_id if thread_root is not None else None,
            slug=base,
            title=parsed.subject,
            html=html,
            text=text,
            email_message_id=parsed.message_id,
            email_json=email_json,
        )
        post = created.entity
        thread_id = thread_root.logical_id if thread_root is not None else created.logical_id

        self.members.find_or_create(sender.id, MemberRole.ADMIN, post_id=created.logical_id)
        self.members.bulk_find_or_create(
            [sender.id] + [u.id for u in recipients],
            [MemberRole.FOLLOWER],
            post_id=thread_id,
        )
        logger.info(
            f"Created post {created.logical_id} in thread {thread_id} of {group.slug}",
            extra={"post_id": created.logical_id, "group_slug": group.slug},
        )
        return post

    def edit(
        self,
        post_id: int,
        editor: User,
        parsed: ParsedHeaders,
        html: str,
        text: str,
        email_json: Optional[Dict[str, Any]] = None,
    ) -> Post:
        """Write a new version of a post on behalf of one of its admins.

        Raises:
            NotFound: If the post does not exist or `editor` is not its admin
            PersistenceError: If a write is rejected
        """
        post = self.posts.find_by_logical_id(post_id)
        if post is None or not self.members.is_admin(editor.id, post_id=post.logical_id):
            raise NotFound(f"Post {post_id} not found or not editable by {editor.email}")

        changes = {
            "html": html,
            "text": text,
            "email_message_id": parsed.message_id,
            "email_json": email_json,
        }
        if parsed.subject:
            changes["title"] = parsed.subject
        new_version = self.posts.update(post, changes, actor_id=editor.id)
        logger.info(
            f"Post {post.logical_id} edited to version {new_version.version}",
            extra={"post_id": post.logical_id, "user_id": editor.id},
        )
        return new_version

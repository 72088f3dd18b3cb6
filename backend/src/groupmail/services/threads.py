"""Thread Resolver - attach an inbound email to an existing thread root."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..domain.email.headers import ParsedHeaders
from ..infrastructure.repositories import PostRepository
from ..models.base import ContentStatus
from ..models.group import Group
from ..models.post import Post

logger = logging.getLogger(__name__)


class ThreadResolver:
    """Find the thread root an email replies to.

    Resolution order:
    1. An explicit ParentPostId (from the routing address or our own
       Message-Id format) looked up by logical id, PUBLISHED only.
    2. In-Reply-To, then References (latest first), matched against the
       stored Message-Id of any post; the most recently created match wins.
    3. Nothing: the email starts a new thread (returns None).

    A match that is itself a reply resolves to its root, so threads never
    nest deeper than one level.
    """

    def __init__(self, db: Session):
        self.posts = PostRepository(db)

    def resolve(self, parsed: ParsedHeaders, group: Group) -> Optional[Post]:
        if parsed.parent_post_id is not None:
            parent = self.posts.find_by_logical_id(parsed.parent_post_id)
            root = self._root_of(parent, group)
            if root is not None:
                return root
            logger.info(
                f"Parent post {parsed.parent_post_id} not found in {group.slug}",
                extra={"group_slug": group.slug},
            )

        for message_id in self._candidate_ids(parsed):
            root = self._root_of(self.posts.find_by_message_id(message_id), group)
            if root is not None:
                return root
        return None

    def _candidate_ids(self, parsed: ParsedHeaders):
        seen = set()
        for message_id in [parsed.in_reply_to] + list(reversed(parsed.references)):
            if message_id and message_id not in seen:
                seen.add(message_id)
                yield message_id

    def _root_of(self, post: Optional[Post], group: Group) -> Optional[Post]:
        if post is None or post.group_id != group.logical_id:
            return None
        if post.parent_post_id is not None:
            post = self.posts.find_by_logical_id(post.parent_post_id)
        elif post.status != ContentStatus.PUBLISHED.value:
            # Matched an older version; the thread is its published version
            post = self.posts.find_by_logical_id(post.logical_id)
        return post

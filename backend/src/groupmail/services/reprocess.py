"""Re-run the sanitizer over stored email payloads.

Used after sanitizer changes: the html of each published post is rebuilt
from the raw email it was created from. Posts are updated in place, no new
version is written.
"""

import logging
from dataclasses import dataclass
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.email.payload import InboundEmail
from ..domain.email.sanitizer import html_to_text, sanitize
from ..errors import PersistenceError
from ..infrastructure.repositories import PostRepository

logger = logging.getLogger(__name__)


@dataclass
class ReprocessedPost:
    post_id: int
    old_length: int
    new_length: int

    @property
    def saving_percent(self) -> int:
        if not self.old_length:
            return 0
        return round((self.old_length - self.new_length) / self.old_length * 100)


def reprocess_posts(db: Session, dry_run: bool = False) -> List[ReprocessedPost]:
    """Sanitize the stored email of every published post again.

    Returns:
        One entry per post whose html changed

    Raises:
        PersistenceError: If the updates cannot be committed
    """
    changed = []
    for post in PostRepository(db).list_published():
        if not post.email_json:
            continue
        email = InboundEmail.model_validate(post.email_json)
        if email.stripped_html is None:
            logger.warning(f"Missing html body for post {post.id}")

        html = sanitize(email.stripped_html, email.stripped_text)
        if html == (post.html or ""):
            continue

        entry = ReprocessedPost(post_id=post.id, old_length=len(post.html or ""), new_length=len(html))
        changed.append(entry)
        logger.info(
            f"Post {post.id}: html {entry.old_length} -> {entry.new_length} chars ({entry.saving_percent}% saved)",
            extra={"post_id": post.id},
        )
        if not dry_run:
            post.html = html
            post.text = html_to_text(html)

    if dry_run:
        return changed
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError("Could not save reprocessed posts") from e
    return changed

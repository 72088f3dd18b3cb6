"""Identity Resolver - users keyed by lower-cased email address."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..errors import InvalidPayload
from ..infrastructure.avatars import AvatarLookup
from ..infrastructure.repositories import UserRepository
from ..models.user import PLACEHOLDER_NAMES, User

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Find or create the user behind an email address.

    Names only move forward: a stored placeholder ("" or "anonymous") is
    replaced by a supplied name, a real name is never overwritten. New
    users get an avatar when an AvatarLookup is injected; lookups degrade
    to no avatar.
    """

    def __init__(self, db: Session, avatars: Optional[AvatarLookup] = None):
        self.users = UserRepository(db)
        self.avatars = avatars

    def find_or_create(self, email: str, name: Optional[str] = None) -> User:
        """Return the user for `email`, creating or enriching it as needed.

        Raises:
            InvalidPayload: If the address is not a usable email
            PersistenceError: If the store rejects the write
        """
        email = email.strip().lower()
        name = name.strip() if name else None
        if name and name.lower() in PLACEHOLDER_NAMES:
            name = None

        user = self.users.get_by_email(email)
        if user is None:
            try:
                user = self.users.create(email=email, name=name)
            except ValueError as e:
                raise InvalidPayload(f"Invalid email address: {email}") from e
            logger.info(f"Created user {user.id}", extra={"user_id": user.id})
            self._attach_avatar(user)
            return user

        if name and not user.has_usable_name:
            self.users.update(user, name=name)
        return user

    def _attach_avatar(self, user: User) -> None:
        if self.avatars is None or user.image:
            return
        image = self.avatars.lookup(user.email)
        if image:
            self.users.update(user, image=image)

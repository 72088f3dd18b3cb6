"""User repository for database operations"""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import PersistenceError
from ...models.user import User


class UserRepository:
    """Repository for users table operations.

    Users are looked up by lower-cased email and updated in place.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        query = select(User).where(
            User.email == email.strip().lower(),
            User.deleted_at.is_(None),
        )
        return self.db.execute(query).scalars().first()

    def create(self, email: str, name: Optional[str] = None) -> User:
        """Insert a user row.

        Raises:
            PersistenceError: If the store rejects the insert
        """
        try:
            user = User(email=email, name=name)
            self.db.add(user)
            self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not create user {email}: {e}") from e
        return user

    def update(self, user: User, **changes: Any) -> User:
        """Apply a partial update in place."""
        try:
            for key, value in changes.items():
                setattr(user, key, value)
            self.db.flush()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not update user {user.id}: {e}") from e
        return user

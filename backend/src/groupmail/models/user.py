"""User SQLAlchemy model"""

import re

from sqlalchemy import Column, Integer, Text, String, DateTime, UniqueConstraint, func
from sqlalchemy.orm import validates

from .base import Base

# Placeholder first names that a richer name may replace
PLACEHOLDER_NAMES = ("", "anonymous")

# Local part: RFC 5322 atext and dots
EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9!#$%&'*+/=?^_`{|}~.\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}$")


class User(Base):
    """User identity keyed by lower-cased email address.

    Users are created the first time an address is seen (as sender or as a
    recipient) and are never merged or deleted by the ingestion pipeline.
    Users have no version history: updates happen in place.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(128), nullable=False)
    name = Column(Text, nullable=True)
    image = Column(Text, nullable=True)
    # Short-lived verification code (5 digits) sent by email
    verification_code = Column(String(16), nullable=True)
    # Long-lived session token
    token = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('email', name='uq_users_email'),
    )

    @validates('email')
    def validate_email(self, key, value):
        """Basic email format validation, stored lower-cased"""
        if not value or not EMAIL_PATTERN.match(value.strip()):
            raise ValueError(f"Invalid email format: {value!r}")
        return value.strip().lower()

    @property
    def has_usable_name(self) -> bool:
        return bool(self.name) and self.name.strip().lower() not in PLACEHOLDER_NAMES

    @property
    def display_name(self) -> str:
        """Name to show in outbound mail.

        Falls back to the first token of the email's local part
        ("john.doe@example.com" -> "john").
        """
        if self.has_usable_name:
            return self.name.strip()
        return name_from_email(self.email)

    def to_dict(self):
        """Convert user to dictionary representation (excludes tokens)"""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.display_name,
            "image": self.image,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


def name_from_email(email: str) -> str:
    local_part = (email or "").split("@")[0]
    token = re.split(r'[.\s_+\-]', local_part)[0]
    return token or local_part

"""Storage repositories for users, groups, posts and memberships."""

from .user_repository import UserRepository
from .group_repository import GroupRepository
from .post_repository import PostRepository
from .member_repository import MemberRepository
from .inbound_message_repository import InboundMessageRepository

__all__ = [
    "UserRepository",
    "GroupRepository",
    "PostRepository",
    "MemberRepository",
    "InboundMessageRepository",
]

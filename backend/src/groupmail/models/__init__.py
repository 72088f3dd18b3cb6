"""SQLAlchemy Models for groupmail"""

from .base import Base, ContentStatus, MemberRole, ActivityAction
from .user import User
from .group import Group
from .post import Post
from .member import Member
from .activity import Activity
from .inbound_message import InboundMessage

__all__ = [
    "Base",
    "ContentStatus",
    "MemberRole",
    "ActivityAction",
    "User",
    "Group",
    "Post",
    "Member",
    "Activity",
    "InboundMessage",
]

from .base import Base
from .user import User
from .group import Group
from .group_member import GroupMember
from .direct_message import DirectMessage
from .group_message import GroupMessage

__all__ = [
    "Base",
    "User",
    "Group",
    "GroupMember",
    "DirectMessage",
    "GroupMessage"
]

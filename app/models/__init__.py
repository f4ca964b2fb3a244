from .user import User
from .activity import Activity
from .post import Post

__all__ = [
    "User",
    "Activity",
    "Post",
]

from datetime import datetime
from typing import Optional, TypedDict

from bson import ObjectId


class UserDocument(TypedDict, total=False):

    _id: ObjectId
    username: str
    email: Optional[str]
    avatar: Optional[str]
    is_online: bool
    last_seen: Optional[datetime]

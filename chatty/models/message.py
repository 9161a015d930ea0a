from datetime import datetime
from typing import Optional, TypedDict

from bson import ObjectId


class MessageDocument(TypedDict, total=False):
    _id: ObjectId
    conversation_id: ObjectId
    sender_id: str
    receiver_id: str
    content: str
    timestamp: datetime
    # read state, the only mutable fields
    is_read: bool
    read_at: Optional[datetime]

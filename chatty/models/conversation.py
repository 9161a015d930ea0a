from datetime import datetime
from typing import List, Optional, TypedDict

from bson import ObjectId


class ConversationDocument(TypedDict, total=False):
    _id: ObjectId
    # both user ids, sorted
    participants: List[str]
    # "<low>:<high>", unique per unordered pair
    pair_key: str
    last_message_id: Optional[ObjectId]
    last_message_at: Optional[datetime]
    created_at: datetime

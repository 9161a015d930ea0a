from datetime import datetime
from typing import Optional

from chatty.models.message import MessageDocument
from chatty.schemas.base import CamelModel
from chatty.schemas.user import Contact, UserSummary


class MessageOut(CamelModel):

    id: str
    conversation_id: str
    sender: UserSummary
    receiver: UserSummary
    content: str
    timestamp: datetime
    is_read: bool = False
    read_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: MessageDocument, sender: dict, receiver: dict) -> "MessageOut":
        return cls(
            id=str(doc["_id"]),
            conversation_id=str(doc["conversation_id"]),
            sender=UserSummary.from_document(sender),
            receiver=UserSummary.from_document(receiver),
            content=doc["content"],
            timestamp=doc["timestamp"],
            is_read=bool(doc.get("is_read", False)),
            read_at=doc.get("read_at"),
        )


class SendMessageRequest(CamelModel):

    receiver_id: str
    content: str


class SendMessageResponse(CamelModel):

    message: str = "Message sent successfully"
    data: MessageOut


class UnreadCountResponse(CamelModel):

    unread_count: int


class MarkReadResponse(CamelModel):

    message: str = "Messages marked as read"
    updated: int


class ConversationSummary(CamelModel):
    """One row of the recent-conversations list.

    `id` is the conversation id; the counterpart's user id is `user.id`.
    """

    id: str
    user: Contact
    last_message: MessageOut
    unread_count: int

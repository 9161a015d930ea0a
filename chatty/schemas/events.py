"""Live channel frames: {"event": <name>, "data": {...}} in both directions."""

from datetime import datetime
from typing import Any, Dict

from pydantic import Field

from chatty.schemas.base import CamelModel

# inbound
SEND_MESSAGE = "send-message"
TYPING = "typing"
STOP_TYPING = "stop-typing"

# outbound
NEW_MESSAGE = "new-message"
MESSAGE_SENT = "message-sent"
MESSAGES_READ = "messages-read"
ERROR = "error"


class InboundFrame(CamelModel):

    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


class SendMessagePayload(CamelModel):

    receiver_id: str
    content: str


class TypingPayload(CamelModel):

    receiver_id: str
    is_typing: bool = True


class StopTypingPayload(CamelModel):

    receiver_id: str


class TypingNotice(CamelModel):

    sender_id: str
    is_typing: bool


class StopTypingNotice(CamelModel):

    sender_id: str


class ReadReceiptNotice(CamelModel):

    reader_id: str
    count: int
    read_at: datetime


class ErrorNotice(CamelModel):

    message: str

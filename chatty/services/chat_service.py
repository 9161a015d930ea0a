import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List

from chatty.config import Config
from chatty.exceptions import NotFoundError, ValidationError
from chatty.repositories.conversation_repository import ConversationRepository
from chatty.repositories.message_repository import MessageRepository, normalize_content
from chatty.repositories.user_repository import UserRepository
from chatty.schemas.message import ConversationSummary, MessageOut
from chatty.schemas.user import Contact
from chatty.utils.mongo import parse_object_id, storage_errors, utc_now

logger = logging.getLogger(__name__)


@dataclass
class ReadReceipt:
    """Result of a mark-read: `reader_id` has read `count` messages from `counterpart_id`."""

    reader_id: str
    counterpart_id: str
    count: int
    read_at: datetime


@dataclass
class HistoryPage:

    messages: List[MessageOut]
    receipt: ReadReceipt


class ChatService:
    """
    The single entry point for message mutations and reads.

    Both the HTTP routes and the live channel send through send_message(), so
    the conversation and message invariants live in one place.
    """

    def __init__(
        self,
        message_repo: MessageRepository,
        conversation_repo: ConversationRepository,
        user_repo: UserRepository,
    ) -> None:
        self._message_repo = message_repo
        self._conversation_repo = conversation_repo
        self._user_repo = user_repo

    async def send_message(self, sender_id: str, receiver_id: Any, content: Any) -> MessageOut:
        if not isinstance(receiver_id, str) or parse_object_id(receiver_id) is None:
            raise ValidationError("Invalid receiver ID")
        normalize_content(content)
        if receiver_id == sender_id:
            raise ValidationError("Cannot send a message to yourself")

        with storage_errors("send_message"):
            receiver = await self._user_repo.get_user_by_id(receiver_id)
            if not receiver:
                raise NotFoundError("Receiver not found")
            sender = await self._user_repo.get_user_by_id(sender_id)
            if not sender:
                raise NotFoundError("Sender not found")
            conversation = await self._conversation_repo.resolve_or_create(sender_id, receiver_id)
            message = await self._message_repo.append(conversation, sender_id, receiver_id, content)

        logger.info("Message %s appended to conversation %s", message["_id"], conversation["_id"])
        return MessageOut.from_document(message, sender, receiver)

    async def get_history(
        self,
        user_id: str,
        other_id: str,
        page: int = 1,
        page_size: int = Config.HISTORY_PAGE_SIZE,
    ) -> HistoryPage:
        """
        Return one page of the conversation between `user_id` and `other_id`, oldest first.

        Pages count back from the most recent message: page 1 holds the newest
        `page_size` messages. Fetching history is the read receipt: every unread
        message from `other_id` to `user_id` is marked read after the page is loaded.
        """
        if page < 1:
            raise ValidationError("page must be >= 1")
        if not 1 <= page_size <= Config.HISTORY_MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {Config.HISTORY_MAX_PAGE_SIZE}")

        with storage_errors("get_history"):
            me, other = await self._require_pair(user_id, other_id)
            docs = await self._message_repo.page_between(
                user_id, other_id, skip=(page - 1) * page_size, limit=page_size
            )
            receipt = await self._mark_read(user_id, other_id)

        profiles = {user_id: me, other_id: other}
        messages = [
            MessageOut.from_document(doc, profiles[doc["sender_id"]], profiles[doc["receiver_id"]])
            for doc in docs
        ]
        return HistoryPage(messages=messages, receipt=receipt)

    async def mark_conversation_read(self, user_id: str, other_id: str) -> ReadReceipt:
        with storage_errors("mark_read"):
            await self._require_pair(user_id, other_id)
            return await self._mark_read(user_id, other_id)

    async def unread_count(self, user_id: str) -> int:
        with storage_errors("unread_count"):
            return await self._message_repo.count_unread(user_id)

    async def recent_conversations(self, user_id: str) -> List[ConversationSummary]:
        with storage_errors("recent_conversations"):
            me = await self._user_repo.get_user_by_id(user_id)
            if not me:
                raise NotFoundError("User not found")
            conversations = await self._conversation_repo.list_for_user(user_id)
            items: List[ConversationSummary] = []
            for convo in conversations:
                other_id = next((p for p in convo["participants"] if p != user_id), None)
                other = await self._user_repo.get_user_by_id(other_id) if other_id else None
                last = await self._message_repo.get(convo["last_message_id"])
                if not other or not last:
                    logger.warning("Skipping conversation %s with a missing participant or message", convo["_id"])
                    continue
                profiles: Dict[str, dict] = {user_id: me, other_id: other}
                unread = await self._message_repo.count_unread(user_id, convo["_id"])
                items.append(
                    ConversationSummary(
                        id=str(convo["_id"]),
                        user=Contact.from_document(other),
                        last_message=MessageOut.from_document(
                            last, profiles[last["sender_id"]], profiles[last["receiver_id"]]
                        ),
                        unread_count=unread,
                    )
                )
        return items

    async def _require_pair(self, user_id: str, other_id: str):
        if parse_object_id(other_id) is None:
            raise ValidationError("Invalid user ID")
        other = await self._user_repo.get_user_by_id(other_id)
        if not other:
            raise NotFoundError("User not found")
        me = await self._user_repo.get_user_by_id(user_id)
        if not me:
            raise NotFoundError("User not found")
        return me, other

    async def _mark_read(self, reader_id: str, counterpart_id: str) -> ReadReceipt:
        read_at = utc_now()
        count = await self._message_repo.mark_read(reader_id, counterpart_id, read_at=read_at)
        if count:
            logger.info("%s read %d message(s) from %s", reader_id, count, counterpart_id)
        return ReadReceipt(reader_id=reader_id, counterpart_id=counterpart_id, count=count, read_at=read_at)

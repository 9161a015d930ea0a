import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from chatty.config import Config
from chatty.exceptions import StoreUnavailable, ValidationError
from chatty.models.conversation import ConversationDocument
from chatty.models.message import MessageDocument
from chatty.repositories.conversation_repository import ConversationRepository
from chatty.utils.mongo import as_utc, utc_now

logger = logging.getLogger(__name__)


def normalize_content(content: Any) -> str:
    if not isinstance(content, str):
        raise ValidationError("Message content must be text")
    text = content.strip()
    if not 1 <= len(text) <= Config.MESSAGE_MAX_LENGTH:
        raise ValidationError(
            f"Message content must be between 1 and {Config.MESSAGE_MAX_LENGTH} characters"
        )
    return text


class MessageRepository:
    """Append-mostly message log; only (is_read, read_at) ever change after insert."""

    def __init__(self, db: AsyncIOMotorDatabase, conversations: Optional[ConversationRepository] = None) -> None:
        self._db = db
        self._conversations = conversations or ConversationRepository(db)

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("timestamp", DESCENDING)])
        await self.collection.create_index(
            [("sender_id", ASCENDING), ("receiver_id", ASCENDING), ("timestamp", DESCENDING)]
        )
        await self.collection.create_index([("receiver_id", ASCENDING), ("is_read", ASCENDING)])

    async def append(
        self,
        conversation: ConversationDocument,
        sender_id: str,
        receiver_id: str,
        content: str,
        timestamp: Optional[datetime] = None,
    ) -> MessageDocument:
        text = normalize_content(content)
        if sorted([sender_id, receiver_id]) != conversation["participants"]:
            raise ValidationError("Sender and receiver must be the participants of the conversation")

        doc: Dict[str, Any] = {
            "conversation_id": conversation["_id"],
            "sender_id": sender_id,
            "receiver_id": receiver_id,
            "content": text,
            "timestamp": as_utc(timestamp) if timestamp else utc_now(),
            "is_read": False,
            "read_at": None,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id

        try:
            await self._conversations.advance_last_message(conversation["_id"], doc)
        except (PyMongoError, StoreUnavailable) as exc:
            # the append is reported failed, so the message must not stay behind
            logger.error("Summary update failed for message %s, rolling back: %s", doc["_id"], exc)
            await self.collection.delete_one({"_id": doc["_id"]})
            if isinstance(exc, StoreUnavailable):
                raise
            raise StoreUnavailable() from exc
        return doc

    async def get(self, message_id: ObjectId) -> Optional[MessageDocument]:
        doc = await self.collection.find_one({"_id": message_id})
        return self._normalize(doc) if doc else None

    async def page_between(self, user_id: str, other_id: str, skip: int, limit: int) -> List[MessageDocument]:
        query = {
            "$or": [
                {"sender_id": user_id, "receiver_id": other_id},
                {"sender_id": other_id, "receiver_id": user_id},
            ]
        }
        sort = [("timestamp", DESCENDING), ("_id", DESCENDING)]
        cursor = self.collection.find(query).sort(sort).skip(skip).limit(limit)
        items = await cursor.to_list(length=limit)
        # most recent page first, oldest first inside the page
        return [self._normalize(it) for it in reversed(items)]

    async def mark_read(
        self,
        reader_id: str,
        counterpart_id: str,
        conversation_id: Optional[ObjectId] = None,
        read_at: Optional[datetime] = None,
    ) -> int:
        query: Dict[str, Any] = {"receiver_id": reader_id, "sender_id": counterpart_id, "is_read": False}
        if conversation_id:
            query["conversation_id"] = conversation_id
        result = await self.collection.update_many(
            query, {"$set": {"is_read": True, "read_at": read_at or utc_now()}}
        )
        return result.modified_count or 0

    async def count_unread(self, user_id: str, conversation_id: Optional[ObjectId] = None) -> int:
        query: Dict[str, Any] = {"receiver_id": user_id, "is_read": False}
        if conversation_id:
            query["conversation_id"] = conversation_id
        return await self.collection.count_documents(query)

    async def latest_in_conversation(self, conversation_id: ObjectId) -> Optional[MessageDocument]:
        cursor = (
            self.collection.find({"conversation_id": conversation_id})
            .sort([("timestamp", DESCENDING), ("_id", DESCENDING)])
            .limit(1)
        )
        items = await cursor.to_list(length=1)
        return self._normalize(items[0]) if items else None

    async def find_without_conversation(self, limit: Optional[int] = None) -> List[MessageDocument]:
        query = {"$or": [{"conversation_id": {"$exists": False}}, {"conversation_id": None}]}
        cursor = self.collection.find(query).sort([("timestamp", ASCENDING), ("_id", ASCENDING)])
        if limit:
            cursor = cursor.limit(limit)
        items = await cursor.to_list(length=limit)
        return [self._normalize(it) for it in items]

    async def set_conversation(self, message_id: ObjectId, conversation_id: ObjectId) -> bool:
        result = await self.collection.update_one(
            {"_id": message_id}, {"$set": {"conversation_id": conversation_id}}
        )
        return bool(result.modified_count)

    @staticmethod
    def _normalize(doc: Dict[str, Any]) -> MessageDocument:
        doc["timestamp"] = as_utc(doc.get("timestamp"))
        doc["read_at"] = as_utc(doc.get("read_at"))
        return doc

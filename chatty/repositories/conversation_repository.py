import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from chatty.exceptions import ConflictOnCreate, StoreUnavailable, ValidationError
from chatty.models.conversation import ConversationDocument
from chatty.utils.mongo import as_utc, utc_now

logger = logging.getLogger(__name__)


def pair_key(user_a: str, user_b: str) -> str:
    low, high = sorted([user_a, user_b])
    return f"{low}:{high}"


class ConversationRepository:
    """One conversation per unordered user pair, enforced by a unique pair_key."""

    SUMMARY_RETRIES = 5

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("pair_key", ASCENDING)], unique=True)
        await self.collection.create_index([("participants", ASCENDING)])
        await self.collection.create_index([("last_message_at", DESCENDING)])

    async def get(self, conversation_id: ObjectId) -> Optional[ConversationDocument]:
        doc = await self.collection.find_one({"_id": conversation_id})
        return self._normalize(doc) if doc else None

    async def find_between(self, user_a: str, user_b: str) -> Optional[ConversationDocument]:
        doc = await self.collection.find_one({"pair_key": pair_key(user_a, user_b)})
        return self._normalize(doc) if doc else None

    async def resolve_or_create(self, user_a: str, user_b: str) -> ConversationDocument:
        if user_a == user_b:
            raise ValidationError("Cannot start a conversation with yourself")
        existing = await self.find_between(user_a, user_b)
        if existing:
            return existing
        try:
            return await self._create(user_a, user_b)
        except ConflictOnCreate:
            logger.info("Lost creation race for pair %s, reloading", pair_key(user_a, user_b))
            winner = await self.find_between(user_a, user_b)
            if winner is None:
                raise StoreUnavailable("Conversation missing after a creation conflict")
            return winner

    async def _create(self, user_a: str, user_b: str) -> ConversationDocument:
        doc: Dict[str, Any] = {
            "participants": sorted([user_a, user_b]),
            "pair_key": pair_key(user_a, user_b),
            "last_message_id": None,
            "last_message_at": None,
            "created_at": utc_now(),
        }
        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError as exc:
            raise ConflictOnCreate(f"Conversation {doc['pair_key']} already exists") from exc
        doc["_id"] = result.inserted_id
        logger.info("Created conversation %s for %s", doc["_id"], doc["pair_key"])
        return doc

    async def advance_last_message(self, conversation_id: ObjectId, message: Dict[str, Any]) -> bool:
        """
        Point the conversation summary at `message` if it is newer than the current one.

        Newer means a greater (timestamp, _id). The write is a compare-and-set on the
        previous last_message_id, retried when another append moved it first.
        """
        candidate = (message["timestamp"], message["_id"])
        for _ in range(self.SUMMARY_RETRIES):
            current = await self.collection.find_one(
                {"_id": conversation_id}, {"last_message_id": 1, "last_message_at": 1}
            )
            if current is None:
                raise StoreUnavailable(f"Conversation {conversation_id} not found")
            last_id = current.get("last_message_id")
            last_at = as_utc(current.get("last_message_at"))
            if last_id is not None and last_at is not None and (last_at, last_id) >= candidate:
                return False
            result = await self.collection.update_one(
                {"_id": conversation_id, "last_message_id": last_id},
                {"$set": {"last_message_id": message["_id"], "last_message_at": message["timestamp"]}},
            )
            if result.matched_count:
                return True
        raise StoreUnavailable(f"Could not update summary of conversation {conversation_id}")

    async def set_last_message(self, conversation_id: ObjectId, message: Dict[str, Any]) -> None:
        await self.collection.update_one(
            {"_id": conversation_id},
            {"$set": {"last_message_id": message["_id"], "last_message_at": message["timestamp"]}},
        )

    async def list_for_user(self, user_id: str, limit: Optional[int] = None) -> List[ConversationDocument]:
        query = {"participants": user_id, "last_message_id": {"$ne": None}}
        sort = [("last_message_at", DESCENDING), ("last_message_id", DESCENDING)]
        cursor = self.collection.find(query).sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        items = await cursor.to_list(length=limit)
        return [self._normalize(it) for it in items]

    async def list_all(self) -> List[ConversationDocument]:
        items = await self.collection.find({}).to_list(length=None)
        return [self._normalize(it) for it in items]

    @staticmethod
    def _normalize(doc: Dict[str, Any]) -> ConversationDocument:
        doc["last_message_at"] = as_utc(doc.get("last_message_at"))
        doc["created_at"] = as_utc(doc.get("created_at"))
        return doc

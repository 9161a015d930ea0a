import re
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from chatty.models.user import UserDocument
from chatty.utils.mongo import as_utc, parse_object_id, utc_now


class UserRepository:
    """Read side of the user directory, plus the online/last-seen flag."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("username", ASCENDING)], unique=True)

    async def create_user(self, username: str, email: Optional[str] = None, avatar: Optional[str] = None) -> str:

        doc = {
            "username": username,
            "email": email,
            "avatar": avatar,
            "is_online": False,
            "last_seen": None,
        }
        result = await self._collection.insert_one(doc)
        return str(result.inserted_id)

    async def get_user_by_id(self, user_id: str) -> Optional[UserDocument]:

        oid = parse_object_id(user_id)
        if oid is None:
            return None
        user = await self._collection.find_one({"_id": oid})
        return self._normalize(user) if user else None

    async def get_user_by_username(self, username: str) -> Optional[UserDocument]:

        user = await self._collection.find_one({"username": username})
        return self._normalize(user) if user else None

    async def search(self, query: str, exclude_id: Optional[str] = None, limit: int = 20) -> List[UserDocument]:
        filters = {}
        if query:
            filters["username"] = {"$regex": f"^{re.escape(query)}", "$options": "i"}
        exclude = parse_object_id(exclude_id)
        if exclude is not None:
            filters["_id"] = {"$ne": exclude}
        cursor = self._collection.find(filters).sort("username", ASCENDING).limit(limit)
        items = await cursor.to_list(length=limit)
        return [self._normalize(it) for it in items]

    async def set_online(self, user_id: str, online: bool) -> None:
        oid = parse_object_id(user_id)
        if oid is None:
            return
        await self._collection.update_one(
            {"_id": oid}, {"$set": {"is_online": online, "last_seen": utc_now()}}
        )

    @staticmethod
    def _normalize(user: dict) -> UserDocument:
        user["_id"] = str(user["_id"])  # normalize to string for API layer
        user["last_seen"] = as_utc(user.get("last_seen"))
        return user

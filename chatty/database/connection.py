import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from chatty.config import Config
from chatty.repositories.conversation_repository import ConversationRepository
from chatty.repositories.message_repository import MessageRepository
from chatty.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


class _Mongo:
    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None


_mongo = _Mongo()


async def connect_to_mongo() -> AsyncIOMotorDatabase:
    _mongo.client = AsyncIOMotorClient(
        Config.MONGODB_URI,
        tz_aware=True,
        serverSelectionTimeoutMS=5000,
    )
    _mongo.db = _mongo.client[Config.MONGODB_DB]
    await _mongo.client.admin.command("ping")
    logger.info("Connected to MongoDB database '%s'", Config.MONGODB_DB)
    return _mongo.db


async def close_mongo_connection() -> None:
    if _mongo.client is not None:
        _mongo.client.close()
        logger.info("MongoDB connection closed")
    _mongo.client = None
    _mongo.db = None


def get_database() -> AsyncIOMotorDatabase:
    if _mongo.db is None:
        raise RuntimeError("MongoDB is not connected; call connect_to_mongo() first")
    return _mongo.db


async def mongo_db_dependency() -> AsyncIOMotorDatabase:
    return get_database()


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await ConversationRepository(db).ensure_indexes()
    await MessageRepository(db).ensure_indexes()
    await UserRepository(db).ensure_indexes()

"""
One-off data migration: attach conversations to messages stored before the
conversation registry existed.

    python -m chatty.migrations
"""

import asyncio
import logging
from typing import Dict

from motor.motor_asyncio import AsyncIOMotorDatabase

from chatty.config import Config
from chatty.config.logging_config import setup_logging
from chatty.database.connection import close_mongo_connection, connect_to_mongo, ensure_indexes
from chatty.exceptions import ChatError
from chatty.repositories.conversation_repository import ConversationRepository
from chatty.repositories.message_repository import MessageRepository
from chatty.utils.mongo import storage_errors

logger = logging.getLogger(__name__)


async def backfill_conversations(db: AsyncIOMotorDatabase) -> Dict[str, int]:
    conversations = ConversationRepository(db)
    messages = MessageRepository(db, conversations)

    legacy = await messages.find_without_conversation()
    logger.info("Found %d message(s) without a conversation", len(legacy))

    migrated = failed = 0
    for message in legacy:
        try:
            with storage_errors("backfill"):
                conversation = await conversations.resolve_or_create(
                    message["sender_id"], message["receiver_id"]
                )
                await messages.set_conversation(message["_id"], conversation["_id"])
        except (ChatError, KeyError, TypeError) as exc:
            logger.error("Failed to migrate message %s: %s", message["_id"], exc)
            failed += 1
            continue
        migrated += 1

    # re-point every summary, including ones that predate this run
    updated = 0
    for conversation in await conversations.list_all():
        latest = await messages.latest_in_conversation(conversation["_id"])
        if latest is None:
            continue
        await conversations.set_last_message(conversation["_id"], latest)
        updated += 1

    report = {"migrated": migrated, "failed": failed, "conversations": updated}
    logger.info("Backfill finished: %s", report)
    return report


async def main() -> Dict[str, int]:
    setup_logging(Config.LOG_LEVEL)
    db = await connect_to_mongo()
    try:
        await ensure_indexes(db)
        return await backfill_conversations(db)
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(main())

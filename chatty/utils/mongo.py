import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from chatty.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    # BSON dates keep milliseconds; truncate so stored and returned values match
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


@contextmanager
def storage_errors(operation: str):
    """Re-raise driver failures as StoreUnavailable."""
    try:
        yield
    except PyMongoError as exc:
        logger.error("Storage failure during %s: %s", operation, exc)
        raise StoreUnavailable() from exc

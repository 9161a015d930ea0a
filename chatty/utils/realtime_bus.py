import asyncio
import logging
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

USER_CHANNEL_PREFIX = "user:"

OnMessage = Callable[[str, str], Awaitable[None]]


def user_channel(user_id: str) -> str:
    return f"{USER_CHANNEL_PREFIX}{user_id}"


class NoopBus:

    enabled = False

    async def publish(self, channel: str, message: str) -> None:
        return

    async def subscribe(self, pattern: str, on_message: OnMessage) -> "NoopSubscription":
        return NoopSubscription()

    async def close(self) -> None:
        return


class NoopSubscription:

    async def run(self) -> None:
        await asyncio.Future()

    async def cancel(self) -> None:
        return


class RedisBus:
    """Publishes per-user event frames so every instance can reach its own sessions."""

    enabled = True

    def __init__(self, url: str) -> None:
        self._redis = redis.from_url(url)

    async def publish(self, channel: str, message: str) -> None:
        await self._redis.publish(channel, message)

    async def subscribe(self, pattern: str, on_message: OnMessage) -> "RedisSubscription":
        pubsub = self._redis.pubsub()
        await pubsub.psubscribe(pattern)
        return RedisSubscription(pubsub, pattern, on_message)

    async def close(self) -> None:
        await self._redis.aclose()


class RedisSubscription:

    def __init__(self, pubsub, pattern: str, on_message: OnMessage) -> None:
        self._pubsub = pubsub
        self._pattern = pattern
        self._on_message = on_message
        self._running = True

    async def run(self) -> None:
        while self._running:
            try:
                msg = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            except RedisError as exc:
                logger.warning("Realtime bus read failed: %s", exc)
                await asyncio.sleep(0.5)
                continue
            if not msg or msg.get("type") != "pmessage":
                continue
            channel = _decode(msg.get("channel"))
            data = _decode(msg.get("data"))
            await self._on_message(channel, data)

    async def cancel(self) -> None:
        self._running = False
        try:
            await self._pubsub.punsubscribe(self._pattern)
            await self._pubsub.aclose()
        except RedisError as exc:
            logger.warning("Realtime bus unsubscribe failed: %s", exc)


def _decode(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


_bus = None


async def get_bus(url: Optional[str] = None):
    global _bus
    if _bus is not None:
        return _bus
    if not url:
        _bus = NoopBus()
        return _bus
    _bus = RedisBus(url)
    logger.info("Realtime bus enabled")
    return _bus


async def close_bus() -> None:
    global _bus
    if _bus is not None:
        await _bus.close()
    _bus = None

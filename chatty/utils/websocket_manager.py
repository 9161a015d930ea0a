import json
import logging
from enum import Enum
from typing import Any, Dict, List, Tuple
from uuid import uuid4

from fastapi import WebSocket

from chatty.utils.realtime_bus import USER_CHANNEL_PREFIX, NoopBus, user_channel

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class LiveSession:
    """One live connection of a user."""

    def __init__(self, websocket: WebSocket, user_id: str) -> None:
        self.id = uuid4().hex
        self.user_id = user_id
        self.websocket = websocket
        self.state = SessionState.CONNECTING

    async def send(self, event: str, data: Any) -> None:
        await self.websocket.send_text(json.dumps({"event": event, "data": data}))

    def __repr__(self) -> str:
        return f"LiveSession(id={self.id!r}, user_id={self.user_id!r}, state={self.state.value})"


class ConnectionManager:
    """
    Maps each user id to the set of its live sessions and fans events out to them.

    register/unregister and the typing-state helpers never await, so each call
    is atomic on the event loop. With an enabled bus, emit() publishes to the
    user's channel and the app-level subscription calls deliver_local(); without
    it, emit() delivers directly. A session is reached through one path only.
    """

    def __init__(self, bus=None) -> None:
        self.active_connections: Dict[str, Dict[str, LiveSession]] = {}
        self._typing: Dict[Tuple[str, str], bool] = {}
        self.bus = bus or NoopBus()

    def register(self, session: LiveSession) -> bool:
        """Add a session; True when it is the user's first one."""
        sessions = self.active_connections.setdefault(session.user_id, {})
        first = not sessions
        sessions[session.id] = session
        session.state = SessionState.ACTIVE
        return first

    def unregister(self, session: LiveSession) -> bool:
        """Remove a session; True when it was the user's last one."""
        session.state = SessionState.CLOSED
        sessions = self.active_connections.get(session.user_id)
        if not sessions or session.id not in sessions:
            return False
        del sessions[session.id]
        if sessions:
            return False
        del self.active_connections[session.user_id]
        return True

    def sessions_of(self, user_id: str) -> List[LiveSession]:
        return list(self.active_connections.get(user_id, {}).values())

    def is_online(self, user_id: str) -> bool:
        return bool(self.active_connections.get(user_id))

    # typing state, best effort

    def set_typing(self, typing_user: str, target_user: str, is_typing: bool) -> None:
        if is_typing:
            self._typing[(typing_user, target_user)] = True
        else:
            self._typing.pop((typing_user, target_user), None)

    def is_typing(self, typing_user: str, target_user: str) -> bool:
        return self._typing.get((typing_user, target_user), False)

    def clear_typing_of(self, typing_user: str) -> List[str]:
        """Drop every typing entry of `typing_user` and return the targets it had."""
        targets = [target for (user, target) in self._typing if user == typing_user]
        for target in targets:
            self._typing.pop((typing_user, target), None)
        return targets

    # fan-out

    async def emit(self, user_id: str, event: str, data: Any) -> None:
        if self.bus.enabled:
            await self.bus.publish(user_channel(user_id), json.dumps({"event": event, "data": data}))
            return
        await self.deliver_local(user_id, event, data)

    async def deliver_local(self, user_id: str, event: str, data: Any) -> int:
        sessions = self.sessions_of(user_id)
        if not sessions:
            logger.debug("User %s is offline, dropping %s", user_id, event)
            return 0
        delivered = 0
        for session in sessions:
            try:
                await session.send(event, data)
                delivered += 1
            except Exception as exc:
                # a dead socket is skipped; its own loop unregisters it
                logger.warning("Dropping %s for session %s: %s", event, session.id, exc)
        return delivered

    async def on_bus_message(self, channel: str, raw: str) -> None:
        if not channel.startswith(USER_CHANNEL_PREFIX):
            return
        user_id = channel[len(USER_CHANNEL_PREFIX):]
        try:
            frame = json.loads(raw)
            event, data = frame["event"], frame.get("data")
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Malformed bus frame on %s: %s", channel, exc)
            return
        await self.deliver_local(user_id, event, data)

    def stats(self) -> Dict[str, int]:
        return {
            "users": len(self.active_connections),
            "sessions": sum(len(s) for s in self.active_connections.values()),
        }

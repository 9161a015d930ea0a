"""
Live Event Dispatcher - per-connection handling of the WebSocket channel.

Flow per connection:
  CONNECTING (credential checked by the route) -> ACTIVE (registered) -> CLOSED

Inbound frames are processed one at a time in arrival order. A send is
persisted through ChatService before anything is emitted, so the recipient
sees `new-message` events in commit order and a failed append only ever
produces an `error` frame for the sender's own session.
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from chatty.exceptions import ChatError, StoreUnavailable
from chatty.repositories.user_repository import UserRepository
from chatty.schemas import events
from chatty.schemas.message import MessageOut
from chatty.services.chat_service import ChatService, ReadReceipt
from chatty.utils.mongo import storage_errors
from chatty.utils.websocket_manager import ConnectionManager, LiveSession

logger = logging.getLogger(__name__)


class LiveEventDispatcher:

    PRESENCE_WRITES = 3

    def __init__(self, manager: ConnectionManager) -> None:
        self.manager = manager

    # connection lifecycle

    async def connect(self, session: LiveSession, directory: Optional[UserRepository] = None) -> None:
        came_online = self.manager.register(session)
        logger.info("User %s connected (session %s)", session.user_id, session.id)
        if came_online:
            await self._report_presence(directory, session.user_id)

    async def disconnect(self, session: LiveSession, directory: Optional[UserRepository] = None) -> None:
        went_offline = self.manager.unregister(session)
        logger.info("User %s disconnected (session %s)", session.user_id, session.id)
        if not went_offline:
            return
        for target in self.manager.clear_typing_of(session.user_id):
            notice = events.StopTypingNotice(sender_id=session.user_id)
            await self.manager.emit(target, events.STOP_TYPING, notice.to_wire())
        await self._report_presence(directory, session.user_id)

    async def serve(
        self,
        websocket: WebSocket,
        session: LiveSession,
        service: ChatService,
        directory: Optional[UserRepository] = None,
    ) -> None:
        """Run the receive loop of an accepted, authenticated connection until it closes."""
        await self.connect(session, directory)
        try:
            while True:
                raw = await websocket.receive_text()
                await self.handle(session, raw, service)
        except WebSocketDisconnect:
            pass
        finally:
            await self.disconnect(session, directory)

    # inbound events

    async def handle(self, session: LiveSession, raw: str, service: ChatService) -> None:
        try:
            frame = events.InboundFrame.model_validate(json.loads(raw))
        except (ValueError, PayloadError):
            await self._reply_error(session, "Invalid event frame")
            return

        if frame.event == events.SEND_MESSAGE:
            await self._handle_send(session, frame.data, service)
        elif frame.event == events.TYPING:
            await self._handle_typing(session, frame.data)
        elif frame.event == events.STOP_TYPING:
            await self._handle_stop_typing(session, frame.data)
        else:
            await self._reply_error(session, f"Unknown event: {frame.event}")

    async def _handle_send(self, session: LiveSession, data: dict, service: ChatService) -> None:
        try:
            payload = events.SendMessagePayload.model_validate(data)
        except PayloadError:
            await self._reply_error(session, "receiverId and content are required")
            return
        # shielded: a send already started commits and fans out even if the connection goes away
        await asyncio.shield(self._send(session, payload, service))

    async def _send(self, session: LiveSession, payload: events.SendMessagePayload, service: ChatService) -> None:
        try:
            message = await service.send_message(session.user_id, payload.receiver_id, payload.content)
        except StoreUnavailable:
            logger.exception("Live send from %s failed", session.user_id)
            await self._reply_error(session, "Failed to send message")
            return
        except ChatError as exc:
            await self._reply_error(session, exc.message)
            return

        self.manager.set_typing(session.user_id, payload.receiver_id, False)
        await self.notify_new_message(message)
        await self._reply(session, events.MESSAGE_SENT, message.to_wire())

    async def _handle_typing(self, session: LiveSession, data: dict) -> None:
        try:
            payload = events.TypingPayload.model_validate(data)
        except PayloadError:
            await self._reply_error(session, "receiverId is required")
            return
        if payload.receiver_id == session.user_id:
            return
        self.manager.set_typing(session.user_id, payload.receiver_id, payload.is_typing)
        notice = events.TypingNotice(sender_id=session.user_id, is_typing=payload.is_typing)
        await self.manager.emit(payload.receiver_id, events.TYPING, notice.to_wire())

    async def _handle_stop_typing(self, session: LiveSession, data: dict) -> None:
        try:
            payload = events.StopTypingPayload.model_validate(data)
        except PayloadError:
            await self._reply_error(session, "receiverId is required")
            return
        if payload.receiver_id == session.user_id:
            return
        self.manager.set_typing(session.user_id, payload.receiver_id, False)
        notice = events.StopTypingNotice(sender_id=session.user_id)
        await self.manager.emit(payload.receiver_id, events.STOP_TYPING, notice.to_wire())

    # outbound, also used by the HTTP routes

    async def notify_new_message(self, message: MessageOut) -> None:
        await self.manager.emit(message.receiver.id, events.NEW_MESSAGE, message.to_wire())

    async def notify_read(self, receipt: ReadReceipt) -> None:
        if not receipt.count:
            return
        notice = events.ReadReceiptNotice(
            reader_id=receipt.reader_id, count=receipt.count, read_at=receipt.read_at
        )
        await self.manager.emit(receipt.counterpart_id, events.MESSAGES_READ, notice.to_wire())

    async def _reply(self, session: LiveSession, event: str, data: dict) -> None:
        try:
            await session.send(event, data)
        except Exception as exc:
            logger.info("Could not reply %s to closed session %s: %s", event, session.id, exc)

    async def _reply_error(self, session: LiveSession, message: str) -> None:
        await self._reply(session, events.ERROR, events.ErrorNotice(message=message).to_wire())

    async def _report_presence(self, directory: Optional[UserRepository], user_id: str) -> None:
        """
        Write the stored online flag for `user_id` from the session map.

        A write that raced a reconnect or disconnect is repeated with the
        current state, so the last write carries the right value.
        """
        if directory is None:
            return
        for _ in range(self.PRESENCE_WRITES):
            online = self.manager.is_online(user_id)
            try:
                with storage_errors("presence update"):
                    await directory.set_online(user_id, online)
            except StoreUnavailable:
                logger.warning("Could not record %s as %s", user_id, "online" if online else "offline")
                return
            if self.manager.is_online(user_id) == online:
                return
        logger.warning("Presence of %s kept changing, stored flag may lag", user_id)

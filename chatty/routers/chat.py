import logging

from fastapi import APIRouter, Depends, WebSocket

from chatty.exceptions import AuthRejected
from chatty.repositories.user_repository import UserRepository
from chatty.services.authenticator import Authenticator
from chatty.services.chat_service import ChatService
from chatty.utils.dependencies import get_chat_service, get_user_repository
from chatty.utils.websocket_manager import LiveSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

AUTH_CLOSE_CODE = 4401


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    service: ChatService = Depends(get_chat_service),
    user_repo: UserRepository = Depends(get_user_repository),
):
    # credential comes as ?token=..., checked before the handshake completes
    token = websocket.query_params.get("token")
    try:
        user = await Authenticator(user_repo).authenticate(token)
    except AuthRejected as exc:
        logger.info("WebSocket rejected: %s", exc.message)
        await websocket.close(code=AUTH_CLOSE_CODE)
        return

    await websocket.accept()
    session = LiveSession(websocket, user["_id"])
    dispatcher = websocket.app.state.dispatcher
    await dispatcher.serve(websocket, session, service, user_repo)

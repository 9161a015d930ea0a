from fastapi import APIRouter, Depends

from chatty.config import Config
from chatty.models.user import UserDocument
from chatty.schemas.message import (
    MarkReadResponse,
    SendMessageRequest,
    SendMessageResponse,
    UnreadCountResponse,
)
from chatty.services.chat_service import ChatService
from chatty.services.live_dispatcher import LiveEventDispatcher
from chatty.utils.dependencies import get_chat_service, get_current_user, get_dispatcher

router = APIRouter(prefix="/api/messages", tags=["messages"])


# fixed paths first so they are not captured by /{user_id}

@router.get("/unread/count")
async def unread_count(
    current_user: UserDocument = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    count = await service.unread_count(current_user["_id"])
    return UnreadCountResponse(unread_count=count).to_wire()


@router.get("/conversations/recent")
async def recent_conversations(
    current_user: UserDocument = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    items = await service.recent_conversations(current_user["_id"])
    return [item.to_wire() for item in items]


@router.post("", status_code=201)
async def send_message(
    body: SendMessageRequest,
    current_user: UserDocument = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
    dispatcher: LiveEventDispatcher = Depends(get_dispatcher),
):
    message = await service.send_message(current_user["_id"], body.receiver_id, body.content)
    await dispatcher.notify_new_message(message)
    return SendMessageResponse(data=message).to_wire()


@router.get("/{user_id}")
async def get_history(
    user_id: str,
    page: int = 1,
    limit: int = Config.HISTORY_PAGE_SIZE,
    current_user: UserDocument = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
    dispatcher: LiveEventDispatcher = Depends(get_dispatcher),
):
    """
    Chronological page of the conversation with `user_id`.

    Also marks that user's messages to the caller as read and tells them so.
    """
    history = await service.get_history(current_user["_id"], user_id, page=page, page_size=limit)
    await dispatcher.notify_read(history.receipt)
    return [m.to_wire() for m in history.messages]


@router.put("/{user_id}/read")
async def mark_read(
    user_id: str,
    current_user: UserDocument = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
    dispatcher: LiveEventDispatcher = Depends(get_dispatcher),
):
    receipt = await service.mark_conversation_read(current_user["_id"], user_id)
    await dispatcher.notify_read(receipt)
    return MarkReadResponse(updated=receipt.count).to_wire()

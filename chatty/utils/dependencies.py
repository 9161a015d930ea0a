from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chatty.database.connection import mongo_db_dependency
from chatty.models.user import UserDocument
from chatty.repositories.conversation_repository import ConversationRepository
from chatty.repositories.message_repository import MessageRepository
from chatty.repositories.user_repository import UserRepository
from chatty.services.authenticator import Authenticator
from chatty.services.chat_service import ChatService
from chatty.services.live_dispatcher import LiveEventDispatcher

security = HTTPBearer(auto_error=False)


def get_user_repository(db=Depends(mongo_db_dependency)) -> UserRepository:
    return UserRepository(db)


def get_chat_service(db=Depends(mongo_db_dependency)) -> ChatService:
    convo_repo = ConversationRepository(db)
    msg_repo = MessageRepository(db, convo_repo)
    return ChatService(msg_repo, convo_repo, UserRepository(db))


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    user_repo: UserRepository = Depends(get_user_repository),
) -> UserDocument:
    # browser clients send the `token` cookie, others the Bearer header
    token = request.cookies.get("token") or (credentials.credentials if credentials else None)
    return await Authenticator(user_repo).authenticate(token)


def get_dispatcher(request: Request) -> LiveEventDispatcher:
    return request.app.state.dispatcher

import logging
from typing import Optional

import jwt

from chatty.exceptions import AuthRejected
from chatty.models.user import UserDocument
from chatty.repositories.user_repository import UserRepository
from chatty.utils.security import decode_access_token

logger = logging.getLogger(__name__)


class Authenticator:
    """Turns a bearer credential into an existing user."""

    def __init__(self, user_repo: UserRepository) -> None:
        self._user_repo = user_repo

    async def authenticate(self, token: Optional[str]) -> UserDocument:
        if not token:
            raise AuthRejected("Access denied. No token provided.")
        try:
            claims = decode_access_token(token)
        except jwt.ExpiredSignatureError:
            raise AuthRejected("Token expired.")
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected credential: %s", exc)
            raise AuthRejected("Invalid token.")

        user = await self._user_repo.get_user_by_id(str(claims["userId"]))
        if not user:
            raise AuthRejected("Invalid token.")
        return user

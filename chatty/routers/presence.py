from fastapi import APIRouter, Depends, Request

from chatty.exceptions import NotFoundError
from chatty.models.user import UserDocument
from chatty.repositories.user_repository import UserRepository
from chatty.schemas.user import Presence
from chatty.utils.dependencies import get_current_user, get_user_repository
from chatty.utils.mongo import storage_errors

router = APIRouter(prefix="/api/presence", tags=["presence"])


@router.get("/{user_id}")
async def presence(
    user_id: str,
    request: Request,
    current_user: UserDocument = Depends(get_current_user),
    user_repo: UserRepository = Depends(get_user_repository),
):
    """
    Online status of a user.

    Sessions on this instance answer first; the stored flag covers users
    connected to another instance behind the same bus.
    """
    with storage_errors("presence"):
        user = await user_repo.get_user_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")
    online = request.app.state.manager.is_online(user_id) or bool(user.get("is_online"))
    return Presence(user_id=user_id, online=online, last_seen=user.get("last_seen")).to_wire()

from typing import Optional

from fastapi import APIRouter, Depends

from chatty.exceptions import NotFoundError
from chatty.models.user import UserDocument
from chatty.repositories.user_repository import UserRepository
from chatty.schemas.user import Contact, UserProfile
from chatty.utils.dependencies import get_current_user, get_user_repository
from chatty.utils.mongo import storage_errors

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("")
async def search_users(
    search: Optional[str] = None,
    current_user: UserDocument = Depends(get_current_user),
    user_repo: UserRepository = Depends(get_user_repository),
):
    with storage_errors("search_users"):
        users = await user_repo.search(search or "", exclude_id=current_user["_id"])
    return [Contact.from_document(u).to_wire() for u in users]


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    current_user: UserDocument = Depends(get_current_user),
    user_repo: UserRepository = Depends(get_user_repository),
):
    with storage_errors("get_user"):
        user = await user_repo.get_user_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")
    return UserProfile.from_document(user).to_wire()

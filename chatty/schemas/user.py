from datetime import datetime
from typing import Optional

from pydantic import EmailStr

from chatty.schemas.base import CamelModel


class UserSummary(CamelModel):

    id: str
    username: str
    avatar: Optional[str] = None

    @classmethod
    def from_document(cls, doc: dict) -> "UserSummary":
        return cls(id=str(doc["_id"]), username=doc.get("username", ""), avatar=doc.get("avatar"))


class Contact(UserSummary):

    is_online: bool = False
    last_seen: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: dict) -> "Contact":
        return cls(
            id=str(doc["_id"]),
            username=doc.get("username", ""),
            avatar=doc.get("avatar"),
            is_online=bool(doc.get("is_online", False)),
            last_seen=doc.get("last_seen"),
        )


class UserProfile(Contact):

    email: Optional[EmailStr] = None

    @classmethod
    def from_document(cls, doc: dict) -> "UserProfile":
        return cls(
            id=str(doc["_id"]),
            username=doc.get("username", ""),
            email=doc.get("email"),
            avatar=doc.get("avatar"),
            is_online=bool(doc.get("is_online", False)),
            last_seen=doc.get("last_seen"),
        )


class Presence(CamelModel):

    user_id: str
    online: bool
    last_seen: Optional[datetime] = None

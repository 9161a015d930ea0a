from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from chatty.config import Config


def create_access_token(user_id: str, expires_minutes: Optional[int] = None) -> str:
    """Mint a token for `user_id`. Issuance belongs to the auth service; this is for tooling and tests."""
    now = datetime.now(timezone.utc)
    ttl = timedelta(minutes=expires_minutes if expires_minutes is not None else Config.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {"userId": user_id, "iat": now, "exp": now + ttl}
    return jwt.encode(payload, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(
        token,
        Config.JWT_SECRET,
        algorithms=[Config.JWT_ALGORITHM],
        options={"require": ["exp", "userId"]},
    )

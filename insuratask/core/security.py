import secrets
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt
from insuratask.core.config import settings

def create_oauth_state(user_id: str = "default") -> str:
    # signed OAuth state, valid for STATE_EXPIRE_MIN minutes
    payload = {
        "user_id": user_id,
        "nonce": secrets.token_urlsafe(16),
        "exp": datetime.utcnow() + timedelta(minutes=settings.STATE_EXPIRE_MIN),
        "type": "oauth_state"
    }
    return jwt.encode(payload, settings.STATE_SECRET, algorithm="HS256")

def verify_oauth_state(state: str) -> Optional[dict]:
    try:
        payload = jwt.decode(state, settings.STATE_SECRET, algorithms=["HS256"])
    except JWTError:
        return None
    if payload.get("type") != "oauth_state":
        return None
    return payload

def state_user_id(state: str) -> Optional[str]:
    payload = verify_oauth_state(state)
    if payload is None:
        return None
    return payload.get("user_id")

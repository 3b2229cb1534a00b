import jwt
from typing import Optional
from splitledger.config import get_settings


def decode_access_token(token: str) -> Optional[dict]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_current_user(token: str) -> Optional[str]:
    """Extract user_id from JWT token"""
    payload = decode_access_token(token)
    if not payload:
        return None
    user_id = payload.get("user_id")
    return str(user_id) if user_id is not None else None

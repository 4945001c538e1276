from __future__ import annotations

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings
from app.core.security import decode_access_token

REGISTER_LIMIT = "5/minute"
LOGIN_LIMIT = "10/minute"
UPLOAD_LIMIT = "60/minute"


def member_or_address_key(request: Request) -> str:
    """Signed-in members share one bucket across devices; everyone else is keyed by address."""
    payload = decode_access_token(request.cookies.get("access_token") or "")
    if payload:
        return f"member:{payload['sub']}"
    return f"address:{get_remote_address(request)}"


limiter = Limiter(key_func=member_or_address_key, enabled=settings.RATE_LIMIT_ENABLED)

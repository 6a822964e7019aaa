"""Shared rate limiter instance for use across route files."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from cashdesk.core.config import settings
from cashdesk.core.security import decode_access_token, extract_bearer_token, token_subject


def get_user_or_ip(request: Request) -> str:
    """Rate limit by user ID if authenticated, else by IP."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token:
        user_id = token_subject(decode_access_token(token))
        if user_id is not None:
            return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_user_or_ip, enabled=settings.rate_limit_enabled)

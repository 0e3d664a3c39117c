"""Rate limiter singleton — import from here to avoid circular deps."""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address


def actor_or_remote_address(request: Request) -> str:
    """Bucket by acting user when the gateway supplied one, else by client IP."""
    user_id = request.headers.get("X-User-Id")
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=actor_or_remote_address)

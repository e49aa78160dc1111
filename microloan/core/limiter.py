from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from microloan.core.settings import settings


def rate_limit_key(request: Request) -> str:
    """Budget per calling operator when one is named, else per client address."""
    actor_id = request.headers.get("x-actor-id", "").strip()
    if actor_id:
        return f"actor:{actor_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.rate_limit_storage_uri,
)

__all__ = ["limiter", "rate_limit_key"]

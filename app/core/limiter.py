import hashlib

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.core.settings import settings


def rate_limit_key(request: Request) -> str:
    """Bucket authenticated callers by token, anonymous callers by address."""
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return "token:" + hashlib.sha256(token.encode("utf-8")).hexdigest()[:32]
    return "ip:" + get_remote_address(request)


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.redis_url,
)

__all__ = ["limiter", "rate_limit_key"]

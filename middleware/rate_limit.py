# middleware/rate_limit.py
"""
Rate limiting using slowapi.

Usage in route files:
    from middleware.rate_limit import limiter

    @router.post("")
    @limiter.limit(ANALYZE_RATE_LIMIT)
    async def analyze(request: Request, ...):
        ...
"""
import hashlib
import os

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address


def _get_rate_limit_key(request: Request) -> str:
    """
    Bucket by API key when the caller sends one (hashed, never stored raw),
    otherwise by client IP. The key is not validated here.
    """
    api_key = request.headers.get("X-API-Key", "").strip()
    if api_key:
        return "key:" + hashlib.sha256(api_key.encode()).hexdigest()[:16]
    return get_remote_address(request)


# Env-overridable so limits can be tuned per environment without redeploying.
DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "60/minute")
ANALYZE_RATE_LIMIT = os.getenv("RATE_LIMIT_ANALYZE", "20/minute")
BATCH_RATE_LIMIT = os.getenv("RATE_LIMIT_BATCH", "5/minute")

limiter = Limiter(
    key_func=_get_rate_limit_key,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI") or os.getenv("REDIS_URL") or "memory://",
    strategy="fixed-window",
    enabled=os.getenv("RATE_LIMIT_ENABLED", "1").lower() in ("1", "true", "yes"),
)

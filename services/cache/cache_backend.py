# services/cache/cache_backend.py
"""
Two-level JSON cache: process memory (L1) in front of an optional Redis (L2).

Redis is only used when REDIS_URL is set. Any Redis error degrades to L1;
cache trouble never fails a pipeline call.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional, Tuple, Union

import redis

logger = logging.getLogger(__name__)

JsonValue = Union[Dict[str, Any], List[Any], str, int, float, bool, None]

REDIS_URL = os.getenv("REDIS_URL", "")
REDIS_PREFIX = os.getenv("REDIS_PREFIX", "tradesignal:")
LOCAL_CACHE_MAX_TTL_SEC = int(os.getenv("CACHE_LOCAL_MAX_TTL_SEC", str(24 * 3600)))

# key -> (expires_at_epoch, payload)
_LOCAL: Dict[str, Tuple[float, JsonValue]] = {}

_redis_client: Optional["redis.Redis"] = None
_redis_checked = False


def get_redis_client() -> Optional["redis.Redis"]:
    """Lazy init. Returns None when REDIS_URL is unset or the URL is unusable."""
    global _redis_client, _redis_checked
    if _redis_checked:
        return _redis_client
    _redis_checked = True

    if not REDIS_URL:
        return None
    try:
        _redis_client = redis.Redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_timeout=2,
            socket_connect_timeout=2,
        )
    except (ValueError, redis.RedisError) as e:
        logger.warning("cache.redis.init_failed err=%s", e)
        _redis_client = None
    return _redis_client


def _norm_key(key: str) -> str:
    return (key or "").strip()


def _local_get(k: str) -> Optional[JsonValue]:
    hit = _LOCAL.get(k)
    if not hit:
        return None
    expires_at, payload = hit
    if time.time() <= expires_at:
        return payload
    _LOCAL.pop(k, None)
    return None


def _local_set(k: str, payload: JsonValue, ttl_seconds: int) -> None:
    _LOCAL[k] = (time.time() + ttl_seconds, payload)


def cache_get(key: str) -> Optional[JsonValue]:
    k = _norm_key(key)
    if not k:
        return None

    hit = _local_get(k)
    if hit is not None:
        return hit

    r = get_redis_client()
    if r is None:
        return None
    try:
        raw = r.get(f"{REDIS_PREFIX}{k}")
    except redis.RedisError as e:
        logger.warning("cache.redis.get_failed key=%s err=%s", k, e)
        return None
    if not isinstance(raw, str):
        return None
    try:
        payload: JsonValue = json.loads(raw)
    except json.JSONDecodeError:
        return None

    ttl = LOCAL_CACHE_MAX_TTL_SEC
    try:
        remaining = r.ttl(f"{REDIS_PREFIX}{k}")
        if isinstance(remaining, int) and remaining > 0:
            ttl = min(ttl, remaining)
    except redis.RedisError:
        pass
    _local_set(k, payload, ttl)
    return payload


def cache_set(key: str, payload: JsonValue, ttl_seconds: int) -> None:
    k = _norm_key(key)
    if not k or ttl_seconds <= 0:
        return

    _local_set(k, payload, min(LOCAL_CACHE_MAX_TTL_SEC, ttl_seconds))

    r = get_redis_client()
    if r is None:
        return
    try:
        r.setex(f"{REDIS_PREFIX}{k}", ttl_seconds, json.dumps(payload, separators=(",", ":")))
    except (redis.RedisError, TypeError) as e:
        logger.warning("cache.redis.set_failed key=%s err=%s", k, e)


def cache_clear_local() -> None:
    _LOCAL.clear()

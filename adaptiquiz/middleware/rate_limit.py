"""
Rate limiting: a slowapi per-IP ceiling for the whole API plus fixed-window
limiters for the expensive quiz actions
"""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple, TypeVar

import redis
import structlog
from fastapi import Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address

from adaptiquiz import config
from adaptiquiz.auth import get_caller_identity
from adaptiquiz.errors import RateLimitExceeded, retry_message
from adaptiquiz.services.monitoring import RATE_LIMIT_DENIALS

logger = structlog.get_logger()

T = TypeVar("T")

# App-wide ceiling per client address
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000/hour", "100/minute"]
)


@dataclass
class RateLimitConfig:
    window_ms: int
    max_requests: int
    fail_open: bool = True


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_time: float
    retry_after: Optional[int] = None


# -------------------- STORES --------------------

class RateLimitStore:
    """Key -> RateLimitEntry storage used by FixedWindowRateLimiter"""

    def get(self, key: str) -> Optional[RateLimitEntry]:
        raise NotImplementedError

    def set(self, key: str, entry: RateLimitEntry) -> None:
        raise NotImplementedError

    def sweep(self, now: float) -> int:
        """Remove entries whose window has elapsed; returns how many were removed"""
        raise NotImplementedError

    def lock(self, key: str):
        """Context manager serializing read-modify-write on key"""
        raise NotImplementedError

    def update(self, key: str, fn: Callable[[Optional[RateLimitEntry]], Tuple[Optional[RateLimitEntry], T]]) -> T:
        """
        Atomically read the entry for key, pass it to fn and store what fn
        returns. fn gives back (new_entry, value); a None entry leaves the
        store untouched. Returns value.
        """
        with self.lock(key):
            entry, value = fn(self.get(key))
            if entry is not None:
                self.set(key, entry)
            return value

    def clear(self) -> None:
        raise NotImplementedError

    def ping(self) -> bool:
        return True


class InMemoryRateLimitStore(RateLimitStore):
    def __init__(self):
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[RateLimitEntry]:
        entry = self._entries.get(key)
        return RateLimitEntry(entry.count, entry.reset_time) if entry else None

    def set(self, key: str, entry: RateLimitEntry) -> None:
        self._entries[key] = RateLimitEntry(entry.count, entry.reset_time)

    def sweep(self, now: float) -> int:
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.reset_time <= now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def lock(self, key: str):
        # One lock for the whole map
        return self._lock

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisRateLimitStore(RateLimitStore):
    """Counters shared between processes. Redis expires entries itself, so sweep is a no-op."""

    def __init__(self, client: "redis.Redis", prefix: str = "ratelimit:"):
        self.redis_client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[RateLimitEntry]:
        data = self.redis_client.hgetall(self._key(key))
        if not data:
            return None
        return RateLimitEntry(int(data["count"]), float(data["reset_time"]))

    def set(self, key: str, entry: RateLimitEntry) -> None:
        name = self._key(key)
        pipe = self.redis_client.pipeline()
        pipe.hset(name, mapping={"count": entry.count, "reset_time": entry.reset_time})
        pipe.pexpireat(name, int(math.ceil(entry.reset_time)))
        pipe.execute()

    def sweep(self, now: float) -> int:
        return 0

    def lock(self, key: str):
        return self.redis_client.lock(f"{self.prefix}lock:{key}", timeout=5, blocking_timeout=5)

    def clear(self) -> None:
        keys = self.redis_client.keys(f"{self.prefix}*")
        if keys:
            self.redis_client.delete(*keys)

    def ping(self) -> bool:
        return bool(self.redis_client.ping())


def create_store(redis_url: Optional[str] = None) -> RateLimitStore:
    """Redis store when a URL is configured and reachable, otherwise in-process"""
    if not redis_url:
        return InMemoryRateLimitStore()
    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
        logger.info("rate_limit_store_connected", backend="redis")
        return RedisRateLimitStore(client)
    except Exception as e:
        logger.warning(f"Redis not available, using in-memory rate limit store: {e}")
        return InMemoryRateLimitStore()


# -------------------- LIMITER --------------------

def _now_ms() -> float:
    return time.time() * 1000


class FixedWindowRateLimiter:
    def __init__(self, name: str, config: RateLimitConfig, store: RateLimitStore,
                 clock: Callable[[], float] = _now_ms):
        self.name = name
        self.config = config
        self.store = store
        self.clock = clock

    def check_limit(self, key: str) -> RateLimitResult:
        """Count one request against key and report whether it is allowed"""
        now = self.clock()
        try:
            return self._check(f"{self.name}:{key}", now)
        except Exception as e:
            if not self.config.fail_open:
                raise
            logger.error("rate_limit_check_failed", limiter=self.name, key=key, error=str(e))
            return RateLimitResult(
                success=True,
                limit=self.config.max_requests,
                remaining=self.config.max_requests,
                reset_time=now + self.config.window_ms,
            )

    def _check(self, key: str, now: float) -> RateLimitResult:
        limit = self.config.max_requests

        def count_request(entry: Optional[RateLimitEntry]):
            if entry is None or entry.reset_time <= now:
                reset_time = now + self.config.window_ms
                return RateLimitEntry(count=1, reset_time=reset_time), RateLimitResult(True, limit, limit - 1, reset_time)

            if entry.count >= limit:
                return None, RateLimitResult(
                    success=False,
                    limit=limit,
                    remaining=0,
                    reset_time=entry.reset_time,
                    retry_after=math.ceil((entry.reset_time - now) / 1000),
                )

            entry.count += 1
            return entry, RateLimitResult(True, limit, limit - entry.count, entry.reset_time)

        self.store.sweep(now)
        result = self.store.update(key, count_request)
        if not result.success:
            RATE_LIMIT_DENIALS.labels(limiter=self.name).inc()
        return result


def generate_key(user_id: Optional[str] = None, ip: Optional[str] = None) -> str:
    if user_id:
        return f"user:{user_id}"
    return f"ip:{ip or 'unknown'}"


def action_key(user_id: Optional[str], action: str) -> str:
    return f"user:{user_id}:{action}" if user_id else f"anonymous:{action}"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or get_remote_address(request)


def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    reset = datetime.fromtimestamp(result.reset_time / 1000, tz=timezone.utc)
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": reset.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
    }


def check_action_limit(user_id: Optional[str], action: str,
                       action_limiter: Optional[FixedWindowRateLimiter] = None) -> dict:
    """Rate limit a named action for a caller; anonymous callers share one bucket per action"""
    action_limiter = action_limiter or rate_limiters["ai_generation"]
    result = action_limiter.check_limit(action_key(user_id, action))
    if not result.success:
        logger.warning("rate_limit_exceeded", action=action, user_id=user_id, retry_after=result.retry_after)
        return {
            "allowed": False,
            "message": retry_message(action, result.retry_after),
            "retry_after": result.retry_after,
            "result": result,
        }
    return {"allowed": True, "result": result}


def enforce_rate_limit(limiter_name: str):
    """FastAPI dependency limiting a route per signed-in user, or per client IP"""
    def dependency(request: Request, response: Response) -> RateLimitResult:
        route_limiter = rate_limiters[limiter_name]
        user_id = get_caller_identity(request.headers.get("authorization"))
        result = route_limiter.check_limit(generate_key(user_id, client_ip(request)))
        if not result.success:
            raise RateLimitExceeded(retry_message(None, result.retry_after), result.retry_after, result)
        response.headers.update(rate_limit_headers(result))
        return result

    return dependency


RATE_LIMITS = {
    # AI calls: 10 per 15 minutes
    "ai_generation": RateLimitConfig(window_ms=15 * 60 * 1000, max_requests=10),
    "general": RateLimitConfig(window_ms=60 * 1000, max_requests=30),
    "auth": RateLimitConfig(window_ms=15 * 60 * 1000, max_requests=5),
    "file_upload": RateLimitConfig(window_ms=5 * 60 * 1000, max_requests=3),
}


def build_rate_limiters(store: RateLimitStore, fail_open: bool = True) -> Dict[str, FixedWindowRateLimiter]:
    return {
        name: FixedWindowRateLimiter(
            name,
            RateLimitConfig(cfg.window_ms, cfg.max_requests, fail_open=fail_open),
            store,
        )
        for name, cfg in RATE_LIMITS.items()
    }


rate_limit_store = create_store(config.RATE_LIMIT_REDIS_URL)
rate_limiters = build_rate_limiters(rate_limit_store, fail_open=config.RATE_LIMIT_FAIL_OPEN)

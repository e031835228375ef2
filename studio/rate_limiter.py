"""
Hybrid in-memory + Redis rate limiting utilities
Counts live in process memory and are synced to Redis periodically, so the
booking gate keeps working (per process) when Redis is unreachable.
"""

import logging
import os
import time
from threading import Lock
from typing import Callable, NamedTuple, Optional

import redis

from .config import BOOKING_RATE_LIMIT, BOOKING_RATE_WINDOW_SECONDS
from .errors import RateLimitedError

logger = logging.getLogger(__name__)

# Redis connection
redis_client: Optional[redis.Redis] = None

# Configuration
MEMORY_CACHE_SYNC_INTERVAL = 10  # Sync to Redis every 10 seconds
MEMORY_CACHE_CLEANUP_INTERVAL = 60  # Clean up expired entries every 60 seconds
REDIS_RETRY_INTERVAL = 60  # Wait before retrying a failed Redis connection


def _mask_redis_url(redis_url: str) -> str:
    if "@" in redis_url:
        url_parts = redis_url.split("@")
        protocol = url_parts[0].split(":")[0]
        return f"{protocol}:****@{url_parts[1]}"
    return "****"


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client
    Supports both a REDIS_URL and individual host/port settings
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection for rate limiting...")

        redis_url = os.getenv("REDIS_URL")
        if redis_url:
            logger.info(f"📡 Using Redis URL connection: {_mask_redis_url(redis_url)}")
            client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
                max_connections=20,
            )
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port = int(os.getenv("REDIS_PORT", "6379"))
            redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"
            logger.info(
                f"📡 Using Redis at {redis_host}:{redis_port} ({'with' if redis_ssl else 'without'} SSL)"
            )
            client = redis.Redis(
                host=redis_host,
                port=redis_port,
                password=os.getenv("REDIS_PASSWORD", None),
                db=int(os.getenv("REDIS_DB", "0")),
                ssl=redis_ssl,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
                max_connections=20,
            )

        # Test connection
        client.ping()
        redis_client = client
        logger.info("Redis connected successfully")

    return redis_client


class RateLimitResult(NamedTuple):
    success: bool
    limit: int
    remaining: int
    reset: int  # Unix timestamp at which the current window ends


class RateLimiter:
    """Fixed-window request counter keyed by caller identity"""

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        key_prefix: str = "rate_limit",
        redis_factory: Optional[Callable[[], redis.Redis]] = get_redis_client,
        time_func: Callable[[], float] = time.time,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix
        self.redis_factory = redis_factory
        self.time_func = time_func

        # Format: {key: {'count': int, 'reset_time': int, 'last_redis_sync': int}}
        self.memory_cache: dict[str, dict] = {}
        self.cache_lock = Lock()
        self.last_cleanup_time = 0
        self._redis: Optional[redis.Redis] = None
        self._redis_failed_at: Optional[int] = None

    def _get_redis(self, current_time: int) -> Optional[redis.Redis]:
        if self._redis is not None or self.redis_factory is None:
            return self._redis

        if self._redis_failed_at and current_time - self._redis_failed_at < REDIS_RETRY_INTERVAL:
            return None

        try:
            self._redis = self.redis_factory()
            self._redis_failed_at = None
        except Exception as e:
            self._redis_failed_at = current_time
            logger.warning(f"⚠️ Redis unavailable, rate limiting {self.key_prefix} in memory only: {e}")
        return self._redis

    def _cleanup_expired(self, current_time: int) -> None:
        """Remove expired entries from memory cache (caller holds the lock)"""
        if current_time - self.last_cleanup_time < MEMORY_CACHE_CLEANUP_INTERVAL:
            return

        expired_keys = [
            k for k, v in self.memory_cache.items() if current_time >= v.get("reset_time", 0)
        ]
        for k in expired_keys:
            del self.memory_cache[k]

        if expired_keys:
            logger.debug(f"🧹 Cleaned up {len(expired_keys)} expired rate limit entries")

        self.last_cleanup_time = current_time

    def _load_entry(self, key: str, current_time: int, client: Optional[redis.Redis]) -> dict:
        """Initialize a window from Redis if it exists there, otherwise start a new one"""
        if client is not None:
            try:
                redis_count = client.get(key)
                redis_ttl = client.ttl(key)
                if redis_count and redis_ttl > 0:
                    return {
                        "count": int(redis_count),
                        "reset_time": current_time + redis_ttl,
                        "last_redis_sync": current_time,
                    }
            except Exception as e:
                logger.warning(f"⚠️ Failed to load from Redis, using memory only: {e}")

        return {
            "count": 0,
            "reset_time": current_time + self.window_seconds,
            "last_redis_sync": current_time,
        }

    def check(self, identifier: str) -> RateLimitResult:
        """Count one request for identifier and report whether it is allowed"""
        key = f"{self.key_prefix}:{identifier}"
        current_time = int(self.time_func())
        client = self._get_redis(current_time)

        with self.cache_lock:
            self._cleanup_expired(current_time)

            if key not in self.memory_cache:
                self.memory_cache[key] = self._load_entry(key, current_time, client)
            cache_entry = self.memory_cache[key]

            # Check if window has expired
            if current_time >= cache_entry["reset_time"]:
                cache_entry["count"] = 0
                cache_entry["reset_time"] = current_time + self.window_seconds
                cache_entry["last_redis_sync"] = 0

            is_allowed = cache_entry["count"] < self.limit
            if is_allowed:
                cache_entry["count"] += 1

            # Sync to Redis periodically (not on every request!)
            time_since_sync = current_time - cache_entry.get("last_redis_sync", 0)
            if client is not None and time_since_sync >= MEMORY_CACHE_SYNC_INTERVAL:
                try:
                    ttl = max(1, cache_entry["reset_time"] - current_time)
                    client.set(key, cache_entry["count"], ex=ttl)
                    cache_entry["last_redis_sync"] = current_time
                    logger.debug(f"📡 Synced {key} to Redis: {cache_entry['count']}/{self.limit}")
                except Exception as e:
                    logger.warning(f"⚠️ Failed to sync to Redis: {e}")

            return RateLimitResult(
                success=is_allowed,
                limit=self.limit,
                remaining=max(0, self.limit - cache_entry["count"]),
                reset=cache_entry["reset_time"],
            )

    def enforce(self, identifier: str) -> RateLimitResult:
        """Like check(), but raises RateLimitedError when the limit is exceeded"""
        result = self.check(identifier)
        if not result.success:
            retry_after = max(0, result.reset - int(self.time_func()))
            logger.warning(
                f"🚫 Rate limit EXCEEDED for {self.key_prefix}:{identifier} - {self.limit} requests "
                f"per {self.window_seconds}s"
            )
            raise RateLimitedError(
                "Too many requests. Please try again in a few minutes.",
                limit=result.limit,
                remaining=result.remaining,
                reset_at=result.reset,
                retry_after=retry_after,
            )
        return result

    def reset(self) -> None:
        with self.cache_lock:
            self.memory_cache.clear()


booking_rate_limiter = RateLimiter(
    limit=BOOKING_RATE_LIMIT,
    window_seconds=BOOKING_RATE_WINDOW_SECONDS,
    key_prefix="booking",
)


def get_booking_rate_limiter() -> RateLimiter:
    """FastAPI dependency for the booking creation gate"""
    return booking_rate_limiter

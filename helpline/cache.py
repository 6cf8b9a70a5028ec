"""
Reply cache backed by Redis.

Strictly an optimization. The connection is attempted exactly once, from
the app lifespan; whatever happens then is recorded in `state` and never
re-evaluated:

    connected: PING succeeded, get/set talk to Redis
    disabled:  turned off in config, get/set are no-ops
    failed:    the single connection attempt failed, get/set are no-ops

get() and set() never raise. Transport errors are logged and treated as
a miss (get) or dropped (set).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

import redis.asyncio as redis

from helpline.config import Settings
from helpline.errors import CacheError

logger = logging.getLogger(__name__)


class CacheState(str, Enum):
    PENDING = "pending"
    CONNECTED = "connected"
    DISABLED = "disabled"
    FAILED = "failed"


def make_cache_key(conversation_id: str, text: str, prefix_chars: int = 50) -> str:
    """Key for a reply: conversation id plus a fixed-length prefix of the message."""
    return f"chat:{conversation_id}:{text[:prefix_chars]}"


class ReplyCache:

    def __init__(
        self,
        enabled: bool = True,
        host: str = "127.0.0.1",
        port: int = 6379,
        db: int = 0,
        password: str = "",
        ttl_seconds: int = 3600,
        connect_timeout: float = 2.0,
        client_factory: Callable[[], "redis.Redis"] | None = None,
    ):
        self.enabled = enabled
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.ttl_seconds = ttl_seconds
        self.connect_timeout = connect_timeout
        self._client_factory = client_factory or self._default_client
        self._client: redis.Redis | None = None
        self.state = CacheState.PENDING

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReplyCache":
        return cls(
            enabled=settings.cache_enabled,
            host=settings.cache_host,
            port=settings.cache_port,
            db=settings.cache_db,
            password=settings.cache_password,
            ttl_seconds=settings.cache_ttl_seconds,
            connect_timeout=settings.cache_connect_timeout,
        )

    def _default_client(self) -> "redis.Redis":
        return redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password or None,
            decode_responses=True,
            socket_connect_timeout=self.connect_timeout,
            socket_timeout=self.connect_timeout,
        )

    @property
    def available(self) -> bool:
        return self.state is CacheState.CONNECTED and self._client is not None

    async def connect(self) -> CacheState:
        """Attempt the one and only connection. Later calls return the recorded state."""
        if self.state is not CacheState.PENDING:
            return self.state

        if not self.enabled:
            self.state = CacheState.DISABLED
            logger.info("Reply cache disabled by config, continuing without cache")
            return self.state

        client = None
        try:
            client = self._client_factory()
            await client.ping()
        except Exception as e:
            logger.warning(
                "Redis connection to %s:%s failed, continuing without cache: %s",
                self.host, self.port, e,
            )
            self.state = CacheState.FAILED
            if client is not None:
                await self._safe_close(client)
            return self.state

        self._client = client
        self.state = CacheState.CONNECTED
        logger.info("Redis connected at %s:%s", self.host, self.port)
        return self.state

    async def _call(self, op: str, *args):
        try:
            return await getattr(self._client, op)(*args)
        except Exception as e:
            raise CacheError(f"Redis {op} failed: {e}") from e

    async def get(self, key: str) -> str | None:
        if not self.available:
            return None
        try:
            return await self._call("get", key)
        except CacheError as e:
            logger.error("Cache miss forced for %r: %s", key, e)
            return None

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        if not self.available:
            return
        try:
            await self._call("setex", key, ttl_seconds or self.ttl_seconds, value)
        except CacheError as e:
            logger.error("Reply not cached for %r: %s", key, e)

    async def status(self) -> str:
        """Health label: not_configured, healthy or unhealthy."""
        if not self.available:
            return "not_configured"
        try:
            await self._call("ping")
            return "healthy"
        except CacheError:
            return "unhealthy"

    async def close(self) -> None:
        if self._client is not None:
            await self._safe_close(self._client)
            self._client = None

    @staticmethod
    async def _safe_close(client) -> None:
        try:
            await client.aclose()
        except Exception as e:
            logger.debug("Ignoring error while closing Redis client: %s", e)

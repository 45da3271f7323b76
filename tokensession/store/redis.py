"""Redis-backed session store with TTL and a payload size limit."""

from __future__ import annotations

import functools
from typing import Any, Optional

from redis.connection import parse_url

from tokensession.codec import Codec, JSONCodec
from tokensession.errors import PayloadTooLarge, TokenSessionError
from tokensession.session import TokenSession
from tokensession.store.base import Store
from tokensession.store.pool import (
    DEFAULT_IDLE_TIMEOUT,
    DEFAULT_PORT,
    DEFAULT_SOCKET_TIMEOUT,
    ConnectionPool,
    dial,
    ping_connection,
)
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="store/redis_store")

# TTL used for sessions whose max_age is 0.
DEFAULT_EXPIRE = 30 * 86400
DEFAULT_MAX_LENGTH = 4096
DEFAULT_PREFIX = "sess_"
DEFAULT_POOL_SIZE = 10


def _is_pong(reply: Any) -> bool:
    return reply in (b"PONG", "PONG")


class RedisStore(Store):
    """
    Sessions stored as single Redis string values under ``key_prefix + token``.

    Each operation borrows one pooled connection and returns it before
    returning to the caller. Nothing is retried.

    Construction pings the server. A failed ping is logged and kept on
    ``startup_error`` rather than raised: the store is still handed back and
    the caller decides whether to use it.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        *,
        default_max_age: int = DEFAULT_EXPIRE,
        max_length: int = DEFAULT_MAX_LENGTH,
        key_prefix: str = DEFAULT_PREFIX,
        codec: Optional[Codec] = None,
    ) -> None:
        """Wrap a connection pool and ping the server once."""
        logger.debug("Initializing RedisStore")
        self.pool = pool
        self.default_max_age = default_max_age
        self._max_length = DEFAULT_MAX_LENGTH
        self.max_length = max_length
        self.key_prefix = key_prefix
        self.codec = codec or JSONCodec()
        self.startup_error: Optional[TokenSessionError] = None
        try:
            if not self.ping():
                logger.warning("Redis answered PING with an unexpected reply")
        except TokenSessionError as exc:
            self.startup_error = exc
            logger.warning("Redis liveness check failed, store created anyway: %s", exc)

    @classmethod
    def create(
        cls,
        size: int,
        network: str,
        address: str,
        password: Optional[str] = None,
        db: int = 0,
        *,
        username: Optional[str] = None,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        socket_timeout: Optional[float] = DEFAULT_SOCKET_TIMEOUT,
        connect_timeout: Optional[float] = DEFAULT_SOCKET_TIMEOUT,
        **options: Any,
    ) -> "RedisStore":
        """Build a store over a new pool of at most ``size`` connections.

        Idle connections are PINGed before reuse. Remaining keyword arguments
        go to the constructor.
        """
        pool = ConnectionPool(
            functools.partial(
                dial,
                network,
                address,
                password,
                db,
                username=username,
                socket_timeout=socket_timeout,
                connect_timeout=connect_timeout,
            ),
            max_idle=size,
            max_active=size,
            idle_timeout=idle_timeout,
            test_on_borrow=ping_connection,
        )
        return cls(pool, **options)

    @classmethod
    def from_url(cls, url: str, size: int = DEFAULT_POOL_SIZE, **options: Any) -> "RedisStore":
        """Build a store from ``redis://[[user]:password@]host[:port][/db]`` or ``unix://`` URLs."""
        if url.startswith("rediss://"):
            raise ValueError("TLS connections (rediss://) are not supported")
        params = parse_url(url)
        if "path" in params:
            network, address = "unix", params["path"]
        else:
            host = params.get("host") or "localhost"
            network, address = "tcp", f"{host}:{params.get('port') or DEFAULT_PORT}"
        logger.debug("Creating RedisStore from %s", mask_url(url))
        return cls.create(
            size,
            network,
            address,
            params.get("password"),
            int(params.get("db") or 0),
            username=params.get("username"),
            **options,
        )

    def __repr__(self) -> str:
        return f"RedisStore(key_prefix={self.key_prefix!r})"

    def __enter__(self) -> "RedisStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def max_length(self) -> int:
        """Largest encoded session accepted by save(), in bytes. 0 means unlimited."""
        return self._max_length

    @max_length.setter
    def max_length(self, value: int) -> None:
        # Negative limits are ignored.
        if value >= 0:
            self._max_length = value

    def _key(self, token: str) -> str:
        """Return the Redis key for a session token."""
        return f"{self.key_prefix}{token}"

    def close(self) -> None:
        """Close the underlying pool."""
        self.pool.close()

    def ping(self) -> bool:
        """Return True if the server answers PING with PONG."""
        with self.pool.get() as conn:
            reply = conn.execute("PING")
        return _is_pong(reply)

    def load(self, session: TokenSession) -> None:
        """Merge the stored values into the session; no stored value is a no-op."""
        key = self._key(session.token)
        with self.pool.get() as conn:
            raw = conn.execute("GET", key)
        if raw is None:
            logger.debug("No session stored at %s", key)
            return
        session.update(self.codec.decode(raw))

    def save(self, session: TokenSession) -> None:
        """Store the encoded session with SETEX, using default_max_age when max_age is 0."""
        payload = self.codec.encode(session.values)
        if self.max_length and len(payload) > self.max_length:
            raise PayloadTooLarge(len(payload), self.max_length)
        ttl = session.max_age or self.default_max_age
        key = self._key(session.token)
        with self.pool.get() as conn:
            conn.execute("SETEX", key, ttl, payload)
        logger.debug("Saved %d bytes at %s (ttl=%ss)", len(payload), key, ttl)

    def delete(self, session: TokenSession) -> None:
        """Remove the stored session; a missing key is not an error."""
        with self.pool.get() as conn:
            conn.execute("DEL", self._key(session.token))

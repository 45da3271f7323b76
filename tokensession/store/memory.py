"""In-memory session store with TTL, intended for development and tests."""

import threading
import time
from typing import Callable, Dict, Optional, Tuple

from tokensession.codec import Codec, JSONCodec
from tokensession.errors import PayloadTooLarge
from tokensession.session import TokenSession
from tokensession.store.base import Store
from tokensession.store.redis import DEFAULT_EXPIRE, DEFAULT_MAX_LENGTH, DEFAULT_PREFIX
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="store/in_memory_store")


class InMemoryStore(Store):
    """Thread-safe, TTL-aware in-memory store (dev/test).

    Payloads are kept encoded so sessions never share mutable values. The
    TTL, payload limit and key prefix behave as they do for RedisStore.
    """

    def __init__(
        self,
        default_max_age: int = DEFAULT_EXPIRE,
        max_length: int = DEFAULT_MAX_LENGTH,
        key_prefix: str = DEFAULT_PREFIX,
        codec: Optional[Codec] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize with the TTL used for sessions whose max_age is 0."""
        logger.debug("Initializing InMemoryStore")
        self.default_max_age = default_max_age
        self._max_length = DEFAULT_MAX_LENGTH
        self.max_length = max_length
        self.key_prefix = key_prefix
        self.codec = codec or JSONCodec()
        self._clock = clock
        self._entries: Dict[str, Tuple[bytes, float]] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"InMemoryStore(entries={len(self._entries)})"

    @property
    def max_length(self) -> int:
        """Largest encoded session accepted by save(), in bytes. 0 means unlimited."""
        return self._max_length

    @max_length.setter
    def max_length(self, value: int) -> None:
        if value >= 0:
            self._max_length = value

    def _key(self, token: str) -> str:
        return f"{self.key_prefix}{token}"

    def load(self, session: TokenSession) -> None:
        """Merge the stored values into the session if present and not expired."""
        key = self._key(session.token)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return
            payload, expires_at = entry
            if expires_at <= self._clock():
                self._entries.pop(key, None)
                return
        session.update(self.codec.decode(payload))

    def save(self, session: TokenSession) -> None:
        """Store the encoded values with the session's TTL."""
        payload = self.codec.encode(session.values)
        if self.max_length and len(payload) > self.max_length:
            raise PayloadTooLarge(len(payload), self.max_length)
        ttl = session.max_age or self.default_max_age
        with self._lock:
            self._entries[self._key(session.token)] = (payload, self._clock() + ttl)

    def delete(self, session: TokenSession) -> None:
        """Remove a session if it exists."""
        with self._lock:
            self._entries.pop(self._key(session.token), None)

    def clear(self) -> None:
        """Clear all sessions."""
        with self._lock:
            self._entries.clear()

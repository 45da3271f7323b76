"""Session storage backends."""

from .base import Store
from .factory import build_store
from .memory import InMemoryStore
from .pool import ConnectionPool, PooledConnection, RedisConnection, dial
from .redis import RedisStore

__all__ = [
    "Store",
    "build_store",
    "ConnectionPool",
    "PooledConnection",
    "RedisConnection",
    "dial",
    "InMemoryStore",
    "RedisStore",
]

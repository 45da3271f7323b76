"""Factory helpers for choosing a session store at startup."""

from __future__ import annotations

from tokensession.config import Settings
from tokensession.store.base import Store
from tokensession.store.memory import InMemoryStore
from tokensession.store.redis import RedisStore
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="store/factory")


DEFAULT_BACKEND = "redis"


def build_store(settings: Settings | None = None) -> Store:
    """Instantiate the configured session store.

    A Redis store is returned even if its startup PING failed; check
    ``store.startup_error`` to find out.
    """
    settings = settings or Settings()
    backend = (settings.store_backend or DEFAULT_BACKEND).lower()

    if backend == "memory":
        logger.info("Using InMemoryStore")
        return InMemoryStore(
            default_max_age=settings.default_max_age,
            max_length=settings.max_payload_length,
            key_prefix=settings.key_prefix,
        )

    if backend == "redis":
        options = dict(
            default_max_age=settings.default_max_age,
            max_length=settings.max_payload_length,
            key_prefix=settings.key_prefix,
            idle_timeout=settings.idle_timeout_seconds,
            socket_timeout=settings.socket_timeout_seconds,
            connect_timeout=settings.connect_timeout_seconds,
        )
        if settings.redis_url:
            logger.info("Using RedisStore at %s", mask_url(settings.redis_url))
            return RedisStore.from_url(settings.redis_url, size=settings.pool_size, **options)
        logger.info(
            "Using RedisStore at %s:%s (db=%s)",
            settings.redis_network,
            settings.redis_address,
            settings.redis_db,
        )
        return RedisStore.create(
            settings.pool_size,
            settings.redis_network,
            settings.redis_address,
            settings.redis_password,
            settings.redis_db,
            **options,
        )

    raise ValueError(f"Unknown session store backend '{backend}'")

# tokensession/check_store.py
"""Startup probe for the configured session store.

Run ``python -m tokensession.check_store`` to verify the backend described by
the ``TOKENSESSION_*`` environment is reachable before serving traffic.
"""

import os
import sys
from typing import Any, Dict, Optional

from tokensession.config import Settings
from tokensession.errors import TokenSessionError
from tokensession.store.factory import build_store
from tokensession.store.redis import RedisStore
from utils.logging_utils import get_tagged_logger, mask_url, setup_logging

logger = get_tagged_logger(__name__, tag="check_store")


def _describe_target(settings: Settings) -> str:
    """Return where the store lives, with credentials masked."""
    if settings.store_backend == "memory":
        return "memory"
    if settings.redis_url:
        return mask_url(settings.redis_url)
    return f"{settings.redis_network}:{settings.redis_address}/{settings.redis_db}"


def get_store_status(settings: Optional[Settings] = None) -> Dict[str, Any]:
    """
    Non-fatal probe of the session store.

    Returns a dict like:
    {
      "ok": bool,
      "reachable": bool,
      "backend": "redis",
      "target": "redis://:***@cache:6379/0",
      "error": "...",   # None unless something went wrong
    }

    This NEVER sys.exit(). Suitable for health checks.
    """
    settings = settings or Settings()
    status: Dict[str, Any] = {
        "ok": False,
        "reachable": False,
        "backend": settings.store_backend,
        "target": _describe_target(settings),
        "error": None,
    }

    try:
        store = build_store(settings)
    except ValueError as exc:
        status["error"] = str(exc)
        return status

    if not isinstance(store, RedisStore):
        status["reachable"] = True
        status["ok"] = True
        return status

    try:
        status["reachable"] = store.ping()
    except TokenSessionError as exc:
        status["error"] = str(exc)
        return status
    finally:
        store.close()

    if not status["reachable"]:
        status["error"] = "unexpected reply to PING"
    status["ok"] = status["reachable"]
    return status


def check_store(settings: Optional[Settings] = None) -> None:
    """
    "Hard" check for startup: sys.exit(1) if the store cannot be reached.
    """
    status = get_store_status(settings)

    if not status["ok"]:
        logger.error(
            "Session store (%s) is unreachable. Tried: %s",
            status["backend"],
            status["target"],
        )
        if status["error"]:
            logger.error("   Details: %s", status["error"])
        sys.exit(1)

    logger.info("Session store (%s) reachable at %s", status["backend"], status["target"])


if __name__ == "__main__":
    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"), service_name="check_store")
    check_store()

"""Token-addressed session state bound to a pluggable store."""

from __future__ import annotations

import math
import struct
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Union

from utils.logging_utils import get_tagged_logger

if TYPE_CHECKING:
    from tokensession.store.base import Store

logger = get_tagged_logger(__name__, tag="session")

# Anything the codec can represent: JSON-shaped primitives and containers.
SessionValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class TokenSession:
    """
    In-memory values for one session token.

    Persistence is delegated to ``store``; the session only holds a reference
    to it. ``max_age`` of 0 means "use the store's default TTL".

    ``values`` is never replaced after construction: ``load`` merges into it
    and ``delete`` clears it in place, so every holder of this object sees
    the same mapping.
    """

    def __init__(self, token: str, store: "Store", max_age: int = 0) -> None:
        self.token = token
        self.max_age = max_age
        self.values: Dict[str, SessionValue] = {}
        self.store = store

    def __repr__(self) -> str:
        return (
            f"TokenSession(token={self.token!r}, max_age={self.max_age}, "
            f"values={self.values!r}, store={self.store!r})"
        )

    def get(self, key: str) -> Tuple[Optional[SessionValue], bool]:
        """Return ``(value, found)`` for key."""
        if key in self.values:
            return self.values[key], True
        return None, False

    def set(self, key: str, value: SessionValue) -> None:
        """Insert or overwrite a value."""
        self.values[key] = value

    def update(self, values: Mapping[str, SessionValue]) -> None:
        """Merge values into the session; keys not in ``values`` are kept."""
        self.values.update(values)

    def load(self) -> None:
        """Merge the stored values for this token into the session."""
        self.store.load(self)

    def save(self) -> None:
        """Persist the session's values under its token."""
        self.store.save(self)

    def delete(self) -> None:
        """Remove the stored session, then clear local values.

        If the store raises, local values are left untouched.
        """
        self.store.delete(self)
        self.values.clear()
        logger.debug("Deleted session %s", self.token)

    # -- typed accessors -------------------------------------------------
    # A value of the wrong type is treated exactly like a missing one.

    def must_get(self, key: str, default: Any = None) -> Any:
        """Return the raw value for key, or default."""
        return self.values.get(key, default)

    def must_get_int(self, key: str, default: int) -> int:
        value = self.values.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return default

    def must_get_int64(self, key: str, default: int) -> int:
        value = self.must_get_int(key, default)
        if INT64_MIN <= value <= INT64_MAX:
            return value
        return default

    def must_get_string(self, key: str, default: str) -> str:
        value = self.values.get(key)
        return value if isinstance(value, str) else default

    def must_get_bool(self, key: str, default: bool) -> bool:
        value = self.values.get(key)
        return value if isinstance(value, bool) else default

    def must_get_float64(self, key: str, default: float) -> float:
        """Return a float; stored integers are widened, booleans are not."""
        value = self.values.get(key)
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return default
        try:
            return float(value)
        except OverflowError:
            return default

    def must_get_float32(self, key: str, default: float) -> float:
        """Like must_get_float64, rounded to single precision.

        Values outside the single-precision range fall back to default.
        """
        value = self.values.get(key)
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return default
        try:
            as_float = float(value)
            rounded = struct.unpack("f", struct.pack("f", as_float))[0]
        except OverflowError:
            return default
        if math.isinf(rounded) and not math.isinf(as_float):
            return default
        return rounded

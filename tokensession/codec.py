"""Codecs turning a session's value mapping into bytes and back."""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Protocol

from tokensession.errors import DecodingError, EncodingError


class Codec(Protocol):
    """Anything that can serialize a session mapping to bytes and back."""

    def encode(self, values: Mapping[str, Any]) -> bytes:
        """Serialize values, raising EncodingError if a value is not representable."""
        ...

    def decode(self, data: bytes) -> Dict[str, Any]:
        """Return a fresh mapping built from data, raising DecodingError if malformed."""
        ...


class JSONCodec:
    """Compact UTF-8 JSON. Values must be JSON-shaped (no NaN, sets or objects)."""

    def encode(self, values: Mapping[str, Any]) -> bytes:
        """Serialize a mapping to compact JSON bytes."""
        try:
            text = json.dumps(dict(values), separators=(",", ":"), allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise EncodingError(f"cannot encode session values: {exc}") from exc
        return text.encode("utf-8")

    def decode(self, data: bytes) -> Dict[str, Any]:
        """Parse JSON bytes into a new dict; the top level must be an object."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        try:
            decoded = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise DecodingError(f"malformed session payload: {exc}") from exc
        if not isinstance(decoded, dict):
            raise DecodingError(
                f"session payload must be a JSON object, got {type(decoded).__name__}"
            )
        return decoded

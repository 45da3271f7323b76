"""Exception types raised by sessions, codecs and stores."""


class TokenSessionError(Exception):
    """Base class for every error this package raises."""


class BackendConnectionError(TokenSessionError):
    """Dialing, authenticating, selecting a database or talking to the backend failed."""


class PoolClosedError(BackendConnectionError):
    """A connection was requested from a pool that has been closed."""


class BackendCommandError(TokenSessionError):
    """The backend answered a command with an error reply."""


class EncodingError(TokenSessionError):
    """Session values could not be serialized."""


class DecodingError(TokenSessionError):
    """A stored payload could not be turned back into session values."""


class PayloadTooLarge(TokenSessionError):
    """The encoded session is bigger than the store accepts."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"encoded session is {size} bytes, limit is {limit}")

"""Shared protocol for session storage backends."""

from typing import Protocol

from tokensession.session import TokenSession


class Store(Protocol):
    """Protocol for session storage backends.

    Every method raises a ``TokenSessionError`` subclass on failure and
    returns ``None`` otherwise.
    """

    def load(self, session: TokenSession) -> None:
        """Merge stored values for ``session.token`` into the session.

        A token with nothing stored is not an error; the session is left as is.
        """

    def save(self, session: TokenSession) -> None:
        """Persist the session's values with its TTL."""

    def delete(self, session: TokenSession) -> None:
        """Remove whatever is stored for ``session.token``; absence is not an error."""

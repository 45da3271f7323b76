"""Pooled connections to a Redis server.

``dial`` opens one authenticated connection with redis-py's low-level
connection classes; ``ConnectionPool`` recycles them between callers:

    pool = ConnectionPool(functools.partial(dial, "tcp", "localhost:6379"),
                          max_idle=4, max_active=4, test_on_borrow=ping_connection)
    with pool.get() as conn:
        conn.execute("GET", "sess_abc")

A connection borrowed with ``get()`` goes back to the pool when the ``with``
block exits, whatever the outcome. Connections that failed at the transport
level are closed instead of being recycled.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Optional, Tuple

import redis

from tokensession.errors import (
    BackendCommandError,
    BackendConnectionError,
    PoolClosedError,
    TokenSessionError,
)
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="store/pool")

DEFAULT_IDLE_TIMEOUT = 240
DEFAULT_MAX_IDLE = 10
DEFAULT_PORT = 6379
DEFAULT_SOCKET_TIMEOUT = 5.0


class RedisConnection:
    """One socket to Redis speaking plain request/response."""

    def __init__(self, raw: redis.connection.AbstractConnection) -> None:
        self._raw = raw
        self.broken = False

    def execute(self, *args: Any) -> Any:
        """Send one command and return its reply."""
        try:
            self._raw.send_command(*args)
            return self._raw.read_response()
        except redis.exceptions.ResponseError as exc:
            raise BackendCommandError(str(exc)) from exc
        except (redis.exceptions.RedisError, OSError) as exc:
            # transport failure or a reply stream out of sync: never reuse it
            self.broken = True
            raise BackendConnectionError(f"{args[0]} failed: {exc}") from exc

    def close(self) -> None:
        self._raw.disconnect()


def _split_address(address: str) -> Tuple[str, int]:
    """Split ``host:port`` (or ``[v6]:port``); a bare host gets the default port."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        return address.strip("[]"), DEFAULT_PORT
    return host.strip("[]"), int(port)


def dial(
    network: str,
    address: str,
    password: Optional[str] = None,
    db: int = 0,
    *,
    username: Optional[str] = None,
    socket_timeout: Optional[float] = DEFAULT_SOCKET_TIMEOUT,
    connect_timeout: Optional[float] = DEFAULT_SOCKET_TIMEOUT,
) -> RedisConnection:
    """Open a connection, authenticating when a password is set and selecting db when non-zero.

    network is ``tcp`` (address ``host:port``) or ``unix`` (address is a socket path).
    The handshake is plain RESP2 ``AUTH`` then ``SELECT``: no ``HELLO`` and no
    ``CLIENT SETINFO``, so servers and caches without them are still reachable.
    ``connect_timeout`` bounds the TCP connect; unix sockets use ``socket_timeout``.
    Raises BackendConnectionError if any of the steps fails; the socket is closed first.
    """
    network = network.lower()
    handshake = dict(
        db=db,
        username=username,
        password=password or None,
        socket_timeout=socket_timeout,
        protocol=2,
        lib_name=None,
        lib_version=None,
    )
    if network == "tcp":
        host, port = _split_address(address)
        raw = redis.Connection(
            host=host,
            port=port,
            socket_connect_timeout=connect_timeout,
            **handshake,
        )
    elif network == "unix":
        raw = redis.UnixDomainSocketConnection(path=address, **handshake)
    else:
        raise ValueError(f"Unsupported network '{network}' (expected 'tcp' or 'unix')")

    try:
        raw.connect()
    except (redis.exceptions.RedisError, OSError) as exc:
        raw.disconnect()
        raise BackendConnectionError(f"cannot connect to {network}:{address}: {exc}") from exc
    logger.debug("Dialed %s:%s (db=%s, auth=%s)", network, address, db, "yes" if password else "no")
    return RedisConnection(raw)


def ping_connection(conn: Any) -> None:
    """test_on_borrow hook: raise unless the connection answers PING."""
    conn.execute("PING")


class PooledConnection:
    """A borrowed connection; returns itself to the pool on ``release()`` or ``with`` exit."""

    def __init__(self, pool: "ConnectionPool", conn: Any) -> None:
        self._pool = pool
        self._conn = conn
        self._released = False

    def __enter__(self) -> "PooledConnection":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def execute(self, *args: Any) -> Any:
        if self._released:
            raise BackendConnectionError("connection was already returned to the pool")
        return self._conn.execute(*args)

    @property
    def broken(self) -> bool:
        return bool(getattr(self._conn, "broken", False))

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._pool._release(self._conn, broken=self.broken)


class ConnectionPool:
    """Thread-safe pool of reusable connections.

    - ``dial``: zero-argument callable returning a new connection (anything
      with ``execute(*args)`` and ``close()``).
    - ``max_idle``: idle connections kept for reuse; extras are closed on return.
    - ``max_active``: open connections allowed at once, 0 for no limit.
      Borrowers block until a connection is returned when the limit is hit.
    - ``idle_timeout``: seconds an idle connection may sit before it is
      closed, 0 to keep them forever.
    - ``test_on_borrow``: called with an idle connection before handing it
      out; if it raises, the connection is closed and another one is tried.
    """

    def __init__(
        self,
        dial: Callable[[], Any],
        *,
        max_idle: int = DEFAULT_MAX_IDLE,
        max_active: int = 0,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        test_on_borrow: Optional[Callable[[Any], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._dial = dial
        self.max_idle = max_idle
        self.max_active = max_active
        self.idle_timeout = idle_timeout
        self.test_on_borrow = test_on_borrow
        self._clock = clock
        # (connection, returned_at), most recently returned first
        self._idle: Deque[Tuple[Any, float]] = deque()
        self._active = 0  # open connections, idle ones included
        self._closed = False
        self._cond = threading.Condition(threading.Lock())

    @property
    def active_count(self) -> int:
        with self._cond:
            return self._active

    @property
    def idle_count(self) -> int:
        with self._cond:
            return len(self._idle)

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self) -> PooledConnection:
        """Borrow a connection, dialing a new one when no idle connection passes its test."""
        return PooledConnection(self, self._acquire())

    def close(self) -> None:
        """Close idle connections and refuse further borrows.

        Connections currently borrowed are closed when they are returned.
        """
        with self._cond:
            if self._closed:
                return
            self._closed = True
            idle = [conn for conn, _ in self._idle]
            self._idle.clear()
            self._active -= len(idle)
            self._cond.notify_all()
        for conn in idle:
            conn.close()
        logger.debug("Connection pool closed (%d idle connections dropped)", len(idle))

    def _acquire(self) -> Any:
        while True:
            candidate = None
            with self._cond:
                stale = self._pop_stale()
                if self._closed:
                    self._close_all(stale)
                    raise PoolClosedError("connection pool is closed")
                if self._idle:
                    candidate, _ = self._idle.popleft()
                elif self.max_active and self._active >= self.max_active:
                    self._close_all(stale)
                    self._cond.wait()
                    continue
                else:
                    self._active += 1
            self._close_all(stale)

            if candidate is None:
                return self._dial_new()
            try:
                usable = self._passes_test(candidate)
            except BaseException:
                self._discard(candidate)
                raise
            if usable:
                return candidate
            self._discard(candidate)

    def _dial_new(self) -> Any:
        try:
            return self._dial()
        except BaseException:
            with self._cond:
                self._active -= 1
                self._cond.notify()
            raise

    def _passes_test(self, conn: Any) -> bool:
        if self.test_on_borrow is None:
            return True
        try:
            self.test_on_borrow(conn)
        except TokenSessionError as exc:
            logger.debug("Idle connection failed its borrow test, discarding: %s", exc)
            return False
        return True

    def _discard(self, conn: Any) -> None:
        with self._cond:
            self._active -= 1
            self._cond.notify()
        conn.close()

    def _pop_stale(self) -> list:
        """Remove idle connections past idle_timeout. Caller holds the lock."""
        stale = []
        if self.idle_timeout > 0:
            cutoff = self._clock() - self.idle_timeout
            while self._idle and self._idle[-1][1] < cutoff:
                conn, _ = self._idle.pop()
                stale.append(conn)
            if stale:
                self._active -= len(stale)
                self._cond.notify(len(stale))
        return stale

    @staticmethod
    def _close_all(conns: list) -> None:
        for conn in conns:
            conn.close()

    def _release(self, conn: Any, broken: bool = False) -> None:
        to_close = conn
        with self._cond:
            if not broken and not self._closed:
                self._idle.appendleft((conn, self._clock()))
                to_close = None
                if len(self._idle) > self.max_idle:
                    to_close, _ = self._idle.pop()
            if to_close is not None:
                self._active -= 1
            self._cond.notify()
        if to_close is not None:
            to_close.close()

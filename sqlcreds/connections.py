"""Connection lifecycle management for the configured database target."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Mapping, Protocol, runtime_checkable

import asyncpg

from .config import ConnectionConfig
from .errors import ConnectionBackendError, NotInitializedError

LOG = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT = 5.0
DEFAULT_CLOSE_TIMEOUT = 5.0

_CONNINFO_PAIR = re.compile(r"\s*([A-Za-z_]+)\s*=\s*('(?:[^'\\]|\\.)*'|[^\s']*)")
_CONNINFO_ESCAPE = re.compile(r"\\(.)")
_CONNINFO_KEYS = {
    "host": "host",
    "port": "port",
    "user": "user",
    "password": "password",
    "dbname": "database",
    "sslmode": "ssl",
}


@runtime_checkable
class ConnectionHandle(Protocol):
    """Live database handle; must tolerate concurrent ``execute`` calls."""

    async def ping(self) -> None:
        """Raise if the database is unreachable."""

    async def execute(self, statement: str) -> Any:
        """Run a single statement."""

    async def close(self) -> None:
        """Release the handle and everything it holds."""


class ConnectionOpener(Protocol):
    """Factory turning a connection string into a live handle."""

    async def open(self, dsn: str, **options: Any) -> ConnectionHandle: ...


def parse_conninfo(dsn: str) -> dict[str, object]:
    """Parse a ``key=value`` connection string into asyncpg keyword arguments."""

    kwargs: dict[str, object] = {}
    position = 0
    text = dsn.rstrip()
    while position < len(text):
        match = _CONNINFO_PAIR.match(text, position)
        if match is None:
            raise ConnectionBackendError(f"Malformed connection string near offset {position}")
        key, value = match.group(1), match.group(2)
        position = match.end()
        if value.startswith("'"):
            value = _CONNINFO_ESCAPE.sub(r"\1", value[1:-1])
        target = _CONNINFO_KEYS.get(key)
        if target is None:
            raise ConnectionBackendError(f"Unsupported connection option '{key}'")
        if not value:
            continue
        if target == "port":
            try:
                kwargs[target] = int(value)
            except ValueError as exc:
                raise ConnectionBackendError(f"Invalid port '{value}' in connection string") from exc
        else:
            kwargs[target] = value
    return kwargs


class AsyncpgHandle:
    """Connection handle backed by an asyncpg pool."""

    _PING_QUERY = "SELECT 1"

    def __init__(self, pool: asyncpg.Pool, *, close_timeout: float = DEFAULT_CLOSE_TIMEOUT) -> None:
        self._pool = pool
        self._close_timeout = close_timeout

    @property
    def pool(self) -> asyncpg.Pool:
        return self._pool

    def saturated(self) -> bool:
        """True when every pool slot is checked out by in-flight work."""

        return self._pool.get_idle_size() == 0 and self._pool.get_size() >= self._pool.get_max_size()

    async def ping(self) -> None:
        if self.saturated():
            return
        async with self._pool.acquire() as conn:
            await conn.execute(self._PING_QUERY)

    async def execute(self, statement: str) -> str:
        return await self._pool.execute(statement)

    async def close(self) -> None:
        try:
            async with asyncio.timeout(self._close_timeout):
                await self._pool.close()
        except TimeoutError:
            LOG.warning("Pool did not close in time; terminating", extra={"timeout": self._close_timeout})
            self._pool.terminate()


class AsyncpgOpener:
    """Opens :class:`AsyncpgHandle` instances from connection strings."""

    def __init__(self, *, connect_timeout: float = 5.0, close_timeout: float = DEFAULT_CLOSE_TIMEOUT) -> None:
        self._connect_timeout = connect_timeout
        self._close_timeout = close_timeout

    async def open(self, dsn: str, **options: Any) -> AsyncpgHandle:
        kwargs: dict[str, object] = parse_conninfo(dsn)
        kwargs.update(options)
        kwargs.setdefault("timeout", self._connect_timeout)
        pool = await asyncpg.create_pool(**kwargs)
        return AsyncpgHandle(pool, close_timeout=self._close_timeout)


class ConnectionManager:
    """Owns the single live handle and heals it on demand.

    ``initialize``, ``get_connection`` and ``close`` serialize on one
    ``asyncio.Lock``; the probe-then-replace sequence runs entirely inside it.
    """

    def __init__(
        self,
        opener: ConnectionOpener | None = None,
        *,
        probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> None:
        self._opener = opener or AsyncpgOpener()
        self._probe_timeout = probe_timeout
        self._lock = asyncio.Lock()
        self._config: ConnectionConfig | None = None
        self._handle: ConnectionHandle | None = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> ConnectionConfig | None:
        return self._config

    @property
    def has_handle(self) -> bool:
        """True while a live handle is held (testing/diagnostics helper)."""

        return self._handle is not None

    async def initialize(
        self,
        config: ConnectionConfig | Mapping[str, Any],
        *,
        verify: bool = False,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Validate and store ``config``; optionally open and ping a handle."""

        if not isinstance(config, ConnectionConfig):
            config = ConnectionConfig.from_mapping(config)
        async with asyncio.timeout(timeout):
            async with self._lock:
                if self._handle is not None:
                    await self._discard()
                self._config = config
                self._initialized = True
                LOG.debug("Connection configuration accepted", extra={"config": config.redacted()})
                if verify:
                    try:
                        handle = await self._acquire()
                        await handle.ping()
                    except asyncio.CancelledError:
                        await self._reset()
                        raise
                    except Exception as exc:
                        await self._reset()
                        raise ConnectionBackendError(f"error verifying connection: {exc}") from exc
        return dict(config.raw)

    async def get_connection(self, *, timeout: float | None = None) -> ConnectionHandle:
        """Return a healthy handle, reopening it if the last one went stale."""

        if not self._initialized:
            raise NotInitializedError("not initialized")
        async with asyncio.timeout(timeout):
            async with self._lock:
                if not self._initialized:
                    raise NotInitializedError("not initialized")
                return await self._acquire()

    async def close(self) -> None:
        """Release the current handle; safe to call repeatedly."""

        async with self._lock:
            await self._discard()

    async def _acquire(self) -> ConnectionHandle:
        if self._handle is not None:
            try:
                async with asyncio.timeout(self._probe_timeout):
                    await self._handle.ping()
            except Exception as exc:
                LOG.warning(
                    "Health check failed; reopening connection",
                    extra={"host": self._config.host if self._config else None, "error": str(exc)},
                )
                await self._discard()
            else:
                return self._handle
        self._handle = await self._open()
        return self._handle

    async def _open(self) -> ConnectionHandle:
        config = self._config
        if config is None:  # pragma: no cover - guarded by initialized
            raise NotInitializedError("not initialized")
        try:
            handle = await self._opener.open(config.connection_string(), **config.pool_options())
        except ConnectionBackendError:
            raise
        except Exception as exc:
            raise ConnectionBackendError(f"Failed to connect to {config.host}:{config.port}: {exc}") from exc
        LOG.info("Opened database connection", extra={"host": config.host, "port": config.port})
        return handle

    async def _reset(self) -> None:
        self._initialized = False
        await self._discard()

    async def _discard(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            async with asyncio.timeout(self._probe_timeout):
                await handle.close()
        except Exception as exc:
            LOG.debug("Ignoring error while closing connection", extra={"error": str(exc)})


__all__ = [
    "AsyncpgHandle",
    "AsyncpgOpener",
    "ConnectionHandle",
    "ConnectionManager",
    "ConnectionOpener",
    "DEFAULT_CLOSE_TIMEOUT",
    "DEFAULT_PROBE_TIMEOUT",
    "parse_conninfo",
]

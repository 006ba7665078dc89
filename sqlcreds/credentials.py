"""Credential service wiring configuration, usernames and statement execution."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Mapping, Sequence

from .config import ConnectionConfig
from .connections import ConnectionManager, ConnectionOpener
from .errors import NotInitializedError, StatementExecutionError
from .executor import StatementExecutor
from .models import UsernameMetadata, format_expiration
from .usernames import UsernameTemplate, compile_template

LOG = logging.getLogger(__name__)

DEFAULT_PASSWORD_STATEMENTS: tuple[str, ...] = ("""ALTER ROLE "{{name}}" WITH PASSWORD '{{password}}';""",)
DEFAULT_EXPIRATION_STATEMENTS: tuple[str, ...] = ("""ALTER ROLE "{{name}}" VALID UNTIL '{{expiration}}';""",)
DEFAULT_REVOCATION_STATEMENTS: tuple[str, ...] = (
    """REVOKE ALL PRIVILEGES ON ALL TABLES IN SCHEMA public FROM "{{name}}";""",
    """DROP ROLE IF EXISTS "{{name}}";""",
)


class CredentialService:
    """Issues, updates and revokes database accounts for one configured target."""

    type_name = "ysql"

    def __init__(
        self,
        manager: ConnectionManager | None = None,
        *,
        opener: ConnectionOpener | None = None,
        executor: StatementExecutor | None = None,
    ) -> None:
        self._manager = manager or ConnectionManager(opener)
        self._executor = executor or StatementExecutor()
        self._username_template: UsernameTemplate | None = None

    @property
    def initialized(self) -> bool:
        return self._manager.initialized and self._username_template is not None

    @property
    def manager(self) -> ConnectionManager:
        return self._manager

    @property
    def username_template(self) -> UsernameTemplate | None:
        return self._username_template

    async def initialize(
        self,
        config: Mapping[str, Any],
        *,
        verify: bool = False,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Validate ``config``, compile the username grammar and prepare the manager."""

        parsed = ConnectionConfig.from_mapping(config)
        template = compile_template(parsed.username_template)
        accepted = await self._manager.initialize(parsed, verify=verify, timeout=timeout)
        self._username_template = template
        LOG.debug("Credential service initialized", extra={"host": parsed.host, "verify": verify})
        return accepted

    async def new_user(
        self,
        metadata: UsernameMetadata,
        statements: Sequence[str],
        password: str,
        expiration: datetime,
        *,
        timeout: float | None = None,
    ) -> str:
        """Create an account and return its rendered username."""

        template = self._require_template()
        if not statements:
            raise StatementExecutionError("no creation statements provided")
        username = template.render(metadata)
        values = _values(username, password=password, expiration=expiration)
        self._executor.prepare(statements, values)
        async with asyncio.timeout(timeout):
            handle = await self._manager.get_connection()
            await self._executor.execute(handle, statements, values)
        LOG.info("Created database user", extra={"username": username, "role": metadata.role_name})
        return username

    async def update_user(
        self,
        username: str,
        *,
        password: str | None = None,
        password_statements: Sequence[str] = (),
        expiration: datetime | None = None,
        expiration_statements: Sequence[str] = (),
        timeout: float | None = None,
    ) -> None:
        """Change the password and/or expiration of an existing account."""

        self._require_template()
        if not username:
            raise StatementExecutionError("missing username")
        if password is None and expiration is None:
            raise StatementExecutionError("no changes requested")
        async with asyncio.timeout(timeout):
            handle = await self._manager.get_connection()
            if password is not None:
                statements = password_statements or DEFAULT_PASSWORD_STATEMENTS
                await self._executor.execute(handle, statements, _values(username, password=password))
                LOG.info("Rotated database user password", extra={"username": username})
            if expiration is not None:
                statements = expiration_statements or DEFAULT_EXPIRATION_STATEMENTS
                await self._executor.execute(handle, statements, _values(username, expiration=expiration))
                LOG.info("Renewed database user", extra={"username": username})

    async def delete_user(
        self,
        username: str,
        statements: Sequence[str] = (),
        *,
        timeout: float | None = None,
    ) -> None:
        """Revoke an account using ``statements`` or the default revocation."""

        self._require_template()
        if not username:
            raise StatementExecutionError("missing username")
        async with asyncio.timeout(timeout):
            handle = await self._manager.get_connection()
            await self._executor.execute(handle, statements or DEFAULT_REVOCATION_STATEMENTS, _values(username))
        LOG.info("Deleted database user", extra={"username": username})

    async def close(self) -> None:
        await self._manager.close()

    def _require_template(self) -> UsernameTemplate:
        if self._username_template is None or not self._manager.initialized:
            raise NotInitializedError("not initialized")
        return self._username_template


def _values(
    username: str,
    *,
    password: str | None = None,
    expiration: datetime | None = None,
) -> dict[str, str]:
    values = {"name": username, "username": username}
    if password is not None:
        values["password"] = password
    if expiration is not None:
        values["expiration"] = format_expiration(expiration)
    return values


__all__ = [
    "CredentialService",
    "DEFAULT_EXPIRATION_STATEMENTS",
    "DEFAULT_PASSWORD_STATEMENTS",
    "DEFAULT_REVOCATION_STATEMENTS",
]

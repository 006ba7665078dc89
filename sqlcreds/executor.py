"""Preparation and execution of credential statement templates."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Iterable, Mapping, Sequence

from .connections import ConnectionHandle
from .errors import StatementExecutionError
from .sqltext import DEFAULT_BLOCK_DELIMITERS, BlockDelimiter, classify, scan, split_statements

LOG = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def substitute(template: str, values: Mapping[str, str]) -> str:
    """Replace ``{{key}}`` tokens verbatim; unknown tokens are left alone."""

    return _PLACEHOLDER.sub(lambda match: values.get(match.group(1), match.group(0)), template)


def prepare_statement(
    template: str,
    values: Mapping[str, str],
    delimiters: Iterable[BlockDelimiter] = DEFAULT_BLOCK_DELIMITERS,
) -> tuple[str, ...]:
    """Turn one template into its ordered, substituted execution units."""

    spans = scan(template)
    if classify(template, delimiters):
        body = template.strip()
        return (substitute(body, values),) if body else ()
    return tuple(substitute(unit, values) for unit in split_statements(template, spans))


class StatementExecutor:
    """Runs statement templates unit by unit against a connection handle."""

    def __init__(self, delimiters: Iterable[BlockDelimiter] = DEFAULT_BLOCK_DELIMITERS) -> None:
        self._delimiters = tuple(delimiters)

    def prepare(self, templates: Sequence[str], values: Mapping[str, str]) -> list[tuple[str, ...]]:
        return [prepare_statement(template, values, self._delimiters) for template in templates]

    async def execute(
        self,
        handle: ConnectionHandle,
        templates: Sequence[str],
        values: Mapping[str, str],
        *,
        timeout: float | None = None,
    ) -> int:
        """Execute every unit in source order and return how many ran.

        All templates are prepared first, so malformed input fails before
        anything runs. A failing unit stops the call; earlier units stay
        applied.
        """

        prepared = self.prepare(templates, values)
        executed = 0
        async with asyncio.timeout(timeout):
            for template_index, units in enumerate(prepared):
                for unit_index, unit in enumerate(units):
                    try:
                        await handle.execute(unit)
                    except Exception as exc:
                        LOG.warning(
                            "Statement unit failed",
                            extra={"template_index": template_index, "unit_index": unit_index},
                        )
                        raise StatementExecutionError(
                            f"statement {unit_index + 1} of template {template_index + 1} failed: {exc}",
                            template_index=template_index,
                            unit_index=unit_index,
                        ) from exc
                    executed += 1
        return executed


async def execute_statements(
    handle: ConnectionHandle,
    templates: Sequence[str],
    values: Mapping[str, str],
    *,
    timeout: float | None = None,
) -> int:
    """Execute ``templates`` with the default block delimiters."""

    return await StatementExecutor().execute(handle, templates, values, timeout=timeout)


__all__ = [
    "StatementExecutor",
    "execute_statements",
    "prepare_statement",
    "substitute",
]

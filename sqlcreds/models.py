"""Shared dataclasses used across the credential modules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

EXPIRATION_FORMAT = "%Y-%m-%d %H:%M:%S%z"


@dataclass(frozen=True, slots=True)
class UsernameMetadata:
    """Request metadata a username template can reference."""

    display_name: str = ""
    role_name: str = ""


def format_expiration(value: datetime) -> str:
    """Render an expiration the way ``VALID UNTIL`` expects it."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.strftime(EXPIRATION_FORMAT)


__all__ = ["EXPIRATION_FORMAT", "UsernameMetadata", "format_expiration"]

"""Connection configuration loading and validation helpers."""

from __future__ import annotations

import math
import re
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

import tomllib

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from .errors import ConfigValidationError

CONFIG_FILE = Path.home() / ".config" / "sqlcreds" / "config.toml"

DEFAULT_PORT = 5433
DEFAULT_POOL_SIZE = 10
REQUIRED_FIELDS = ("host", "username", "password")
REDACTED = "********"

_DECIMAL = re.compile(r"\d+")
_SECONDS = re.compile(r"\d+(?:\.\d+)?")
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_CONNINFO_SPECIAL = re.compile(r"[\s'\\]")


def parse_duration(value: object) -> timedelta:
    """Coerce seconds, ``timedelta`` or Go-style strings (``"1h30m"``) to a timedelta."""

    if isinstance(value, bool):
        raise ValueError("expected a duration, got bool")
    if isinstance(value, timedelta):
        duration = value
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValueError(f"invalid duration {value!r}")
        duration = timedelta(seconds=value)
    elif isinstance(value, str):
        text = value.strip()
        if _SECONDS.fullmatch(text):
            duration = timedelta(seconds=float(text))
        else:
            parts = _DURATION_PART.findall(text)
            if not text or "".join(number + unit for number, unit in parts) != text:
                raise ValueError(f"invalid duration {value!r}")
            seconds = sum(float(number) * _DURATION_UNITS[unit] for number, unit in parts)
            duration = timedelta(seconds=seconds)
    else:
        raise ValueError(f"expected a duration, got {type(value).__name__}")
    if duration < timedelta(0):
        raise ValueError("duration must not be negative")
    return duration


def _quote_conninfo(value: str) -> str:
    if value and not _CONNINFO_SPECIAL.search(value):
        return value
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class ConnectionConfig(BaseModel):
    """Validated connection settings for the single configured target."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    host: str = ""
    port: int = DEFAULT_PORT
    username: str = ""
    password: str = Field(default="", repr=False)
    db: str = ""
    max_open_connections: int = 0
    max_idle_connections: int = 0
    max_connection_lifetime: timedelta = timedelta(0)
    username_template: str = ""
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @field_validator("host", "username", "password", "db", "username_template", mode="before")
    @classmethod
    def _coerce_string(cls, value: object) -> str:
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        raise ValueError(f"expected a string, got {type(value).__name__}")

    @field_validator("port", "max_open_connections", "max_idle_connections", mode="before")
    @classmethod
    def _coerce_int(cls, value: object, info: ValidationInfo) -> int:
        if isinstance(value, str) and not value.strip():
            return cls.model_fields[info.field_name].default
        if isinstance(value, bool):
            raise ValueError("expected an integer, got bool")
        if isinstance(value, int):
            number = value
        elif isinstance(value, str) and _DECIMAL.fullmatch(value.strip()):
            number = int(value.strip())
        else:
            raise ValueError(f"expected an integer, got {value!r}")
        if number < 0:
            raise ValueError("must not be negative")
        return number

    @field_validator("max_connection_lifetime", mode="before")
    @classmethod
    def _coerce_duration(cls, value: object) -> timedelta:
        if isinstance(value, str) and not value.strip():
            return timedelta(0)
        return parse_duration(value)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ConnectionConfig:
        """Decode a raw option map and check the required fields."""

        if not isinstance(raw, Mapping):
            raise ConfigValidationError(f"configuration must be a mapping, got {type(raw).__name__}")
        data = {key: value for key, value in raw.items() if key != "raw"}
        try:
            config = cls.model_validate({**data, "raw": dict(raw)})
        except ValidationError as exc:
            raise ConfigValidationError(f"invalid configuration: {_describe(exc)}") from exc
        for name in REQUIRED_FIELDS:
            if not getattr(config, name):
                raise ConfigValidationError(f"{name} cannot be empty")
        return config

    def connection_string(self) -> str:
        """Keyword/value connection string understood by libpq-style drivers."""

        pairs = (
            ("host", self.host),
            ("port", str(self.port)),
            ("user", self.username),
            ("password", self.password),
            ("dbname", self.db),
            ("sslmode", "disable"),
        )
        return " ".join(f"{key}={_quote_conninfo(value)}" for key, value in pairs)

    def pool_options(self) -> dict[str, object]:
        """Pool sizing hints derived from the max_* settings."""

        max_size = self.max_open_connections or DEFAULT_POOL_SIZE
        options: dict[str, object] = {
            "max_size": max_size,
            "min_size": min(self.max_idle_connections, max_size),
        }
        if self.max_connection_lifetime:
            options["max_inactive_connection_lifetime"] = self.max_connection_lifetime.total_seconds()
        return options

    def redacted(self) -> dict[str, Any]:
        """Return the raw option map with the password masked."""

        data = dict(self.raw)
        if "password" in data:
            data["password"] = REDACTED
        return data


def load_config(path: Path | str | None = None) -> dict[str, Any]:
    """Read the ``[connection]`` table of a TOML config file."""

    target = Path(path) if path is not None else CONFIG_FILE
    try:
        with target.open("rb") as handle:
            document = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigValidationError(f"Config file not found: {target}") from exc
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise ConfigValidationError(f"Failed to read config file {target}: {exc}") from exc
    section = document.get("connection")
    if not isinstance(section, dict):
        raise ConfigValidationError(f"Config file {target} has no [connection] table")
    return dict(section)


def _describe(exc: ValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "config"
        messages.append(f"{location}: {error['msg']}")
    return "; ".join(messages)


__all__ = [
    "CONFIG_FILE",
    "ConnectionConfig",
    "DEFAULT_PORT",
    "load_config",
    "parse_duration",
]

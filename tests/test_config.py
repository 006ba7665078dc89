"""Tests for connection configuration parsing."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest

from sqlcreds.config import ConnectionConfig, load_config, parse_duration
from sqlcreds.errors import ConfigValidationError

BASE = {"host": "db1", "username": "u", "password": "p"}


@pytest.mark.parametrize("missing", ["host", "username", "password"])
def test_from_mapping_requires_core_fields(missing: str) -> None:
    raw = dict(BASE)
    raw[missing] = ""

    with pytest.raises(ConfigValidationError, match=f"{missing} cannot be empty"):
        ConnectionConfig.from_mapping(raw)


def test_from_mapping_rejects_absent_fields() -> None:
    with pytest.raises(ConfigValidationError, match="host cannot be empty"):
        ConnectionConfig.from_mapping({"username": "u", "password": "p"})


def test_from_mapping_coerces_string_numbers() -> None:
    config = ConnectionConfig.from_mapping(
        {**BASE, "port": "5432", "max_open_connections": "5", "max_connection_lifetime": "1h30m"}
    )

    assert config.port == 5432
    assert config.max_open_connections == 5
    assert config.max_connection_lifetime == timedelta(hours=1, minutes=30)


def test_from_mapping_treats_empty_strings_as_defaults() -> None:
    config = ConnectionConfig.from_mapping(
        {**BASE, "port": "", "max_open_connections": " ", "max_connection_lifetime": ""}
    )

    assert config.port == 5433
    assert config.max_open_connections == 0
    assert config.max_connection_lifetime == timedelta(0)
    assert "max_inactive_connection_lifetime" not in config.pool_options()


def test_from_mapping_rejects_unsupported_types() -> None:
    with pytest.raises(ConfigValidationError, match="max_open_connections"):
        ConnectionConfig.from_mapping({**BASE, "max_open_connections": True})
    with pytest.raises(ConfigValidationError, match="port"):
        ConnectionConfig.from_mapping({**BASE, "port": "five"})
    with pytest.raises(ConfigValidationError, match="host"):
        ConnectionConfig.from_mapping({**BASE, "host": 42})


def test_from_mapping_keeps_raw_options() -> None:
    raw = {**BASE, "password": "hunter2", "custom_option": "x"}

    config = ConnectionConfig.from_mapping(raw)

    assert config.raw == raw
    assert config.redacted()["password"] == "********"
    assert "hunter2" not in repr(config)


def test_connection_string_matches_libpq_format() -> None:
    config = ConnectionConfig.from_mapping({**BASE, "port": 5433, "db": "yugabyte"})

    assert config.connection_string() == (
        "host=db1 port=5433 user=u password=p dbname=yugabyte sslmode=disable"
    )


def test_connection_string_quotes_awkward_values() -> None:
    config = ConnectionConfig.from_mapping({**BASE, "password": "it's a secret"})

    assert "password='it\\'s a secret'" in config.connection_string()
    assert "dbname=''" in config.connection_string()


def test_pool_options_follow_limits() -> None:
    config = ConnectionConfig.from_mapping(
        {**BASE, "max_open_connections": 4, "max_idle_connections": 9, "max_connection_lifetime": 30}
    )

    assert config.pool_options() == {
        "max_size": 4,
        "min_size": 4,
        "max_inactive_connection_lifetime": 30.0,
    }


def test_pool_options_defaults() -> None:
    config = ConnectionConfig.from_mapping(BASE)

    assert config.pool_options() == {"max_size": 10, "min_size": 0}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (90, timedelta(seconds=90)),
        (1.5, timedelta(seconds=1.5)),
        ("45", timedelta(seconds=45)),
        ("250ms", timedelta(milliseconds=250)),
        ("2h", timedelta(hours=2)),
        (timedelta(minutes=3), timedelta(minutes=3)),
    ],
)
def test_parse_duration_accepts_known_shapes(value: object, expected: timedelta) -> None:
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["soon", "", "5 minutes", -1, True, None])
def test_parse_duration_rejects_unknown_shapes(value: object) -> None:
    with pytest.raises(ValueError):
        parse_duration(value)


def test_load_config_reads_connection_table(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text('[connection]\nhost = "db1"\nusername = "u"\npassword = "p"\nport = 5433\n')

    assert load_config(path) == {"host": "db1", "username": "u", "password": "p", "port": 5433}


def test_load_config_errors_when_missing(tmp_path: Path) -> None:
    with pytest.raises(ConfigValidationError, match="not found"):
        load_config(tmp_path / "missing.toml")


def test_load_config_requires_connection_table(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text('theme = "dark"\n')

    with pytest.raises(ConfigValidationError, match=r"\[connection\]"):
        load_config(path)

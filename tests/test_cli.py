"""Tests for the command line entry point."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import pytest

from sqlcreds import cli


class _Handle:
    statements: list[str] = []

    async def ping(self) -> None:
        return None

    async def execute(self, statement: str) -> str:
        self.statements.append(statement)
        return "OK"

    async def close(self) -> None:
        return None


class _Opener:
    async def open(self, dsn: str, **options: Any) -> _Handle:
        return _Handle()


def _write_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text('[connection]\nhost = "db1"\nusername = "admin"\npassword = "secret"\n')
    return path


def test_username_command_renders_default_grammar(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["username", "--display-name", "token", "--role-name", "myrole", "--count", "3"])

    lines = capsys.readouterr().out.splitlines()
    assert code == 0
    assert len(lines) == 3
    assert all(re.fullmatch(r"v-token-myrole-[a-zA-Z0-9]{20}-[0-9]{10}", line) for line in lines)


def test_username_command_reports_invalid_template(capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(["username", "--template", "{{.Bogus}}", "--display-name", "a", "--role-name", "b"])

    assert code == 1
    assert "Unknown field" in capsys.readouterr().err


def test_prepare_command_shows_units(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "create.sql"
    path.write_text('CREATE ROLE "{{name}}";\nGRANT x TO "{{name}}";\n')

    code = cli.main(["prepare", str(path)])

    out = capsys.readouterr().out
    assert code == 0
    assert "split, 2 unit(s)" in out
    assert 'GRANT x TO "{{name}}"' in out


def test_create_command_issues_user(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("sqlcreds.connections.AsyncpgOpener", _Opener)
    _Handle.statements = []
    statements = tmp_path / "create.sql"
    statements.write_text("""CREATE ROLE "{{name}}" WITH LOGIN PASSWORD '{{password}}' VALID UNTIL '{{expiration}}';""")

    code = cli.main(
        [
            "create",
            "--config",
            str(_write_config(tmp_path)),
            "--display-name",
            "token",
            "--role-name",
            "myrole",
            "--statements",
            str(statements),
        ]
    )

    out = capsys.readouterr().out
    assert code == 0
    username = re.search(r"username: (\S+)", out).group(1)
    assert username.startswith("v-token-myrole-")
    assert _Handle.statements and f'"{username}"' in _Handle.statements[0]


def test_delete_command_uses_default_revocation(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("sqlcreds.connections.AsyncpgOpener", _Opener)
    _Handle.statements = []

    code = cli.main(["delete", "--config", str(_write_config(tmp_path)), "--username", "v-old"])

    assert code == 0
    assert _Handle.statements[-1] == 'DROP ROLE IF EXISTS "v-old"'
    assert "deleted: v-old" in capsys.readouterr().out


def test_create_command_reports_missing_config(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    statements = tmp_path / "create.sql"
    statements.write_text("SELECT 1;")

    code = cli.main(
        [
            "create",
            "--config",
            str(tmp_path / "missing.toml"),
            "--display-name",
            "a",
            "--role-name",
            "b",
            "--statements",
            str(statements),
        ]
    )

    assert code == 1
    assert "Config file not found" in capsys.readouterr().err

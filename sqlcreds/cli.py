"""Command line entry point for rendering usernames and issuing credentials."""

from __future__ import annotations

import argparse
import asyncio
import logging
import secrets
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .config import CONFIG_FILE, load_config
from .credentials import CredentialService
from .errors import CredentialError
from .executor import prepare_statement
from .models import UsernameMetadata
from .sqltext import classify
from .usernames import compile_template

LOG = logging.getLogger(__name__)

DEFAULT_TTL = 3600


def _read_templates(paths: list[str]) -> list[str]:
    return [Path(path).read_text() for path in paths]


def _cmd_username(args: argparse.Namespace) -> int:
    template = compile_template(args.template)
    metadata = UsernameMetadata(display_name=args.display_name, role_name=args.role_name)
    for _ in range(args.count):
        print(template.render(metadata))
    return 0


def _cmd_prepare(args: argparse.Namespace) -> int:
    for path, text in zip(args.files, _read_templates(args.files)):
        mode = "single unit" if classify(text) else "split"
        units = prepare_statement(text, {})
        print(f"-- {path}: {mode}, {len(units)} unit(s)")
        for unit in units:
            print(unit)
            print("--")
    return 0


async def _create(args: argparse.Namespace, templates: list[str], password: str) -> str:
    service = CredentialService()
    try:
        await service.initialize(load_config(args.config), verify=args.verify, timeout=args.timeout)
        expiration = datetime.now(tz=timezone.utc) + timedelta(seconds=args.ttl)
        metadata = UsernameMetadata(display_name=args.display_name, role_name=args.role_name)
        return await service.new_user(metadata, templates, password, expiration, timeout=args.timeout)
    finally:
        await service.close()


def _cmd_create(args: argparse.Namespace) -> int:
    templates = _read_templates(args.statements)
    password = secrets.token_urlsafe(24)
    username = asyncio.run(_create(args, templates, password))
    print(f"username: {username}")
    print(f"password: {password}")
    return 0


async def _delete(args: argparse.Namespace, templates: list[str]) -> None:
    service = CredentialService()
    try:
        await service.initialize(load_config(args.config), verify=args.verify, timeout=args.timeout)
        await service.delete_user(args.username, templates, timeout=args.timeout)
    finally:
        await service.close()


def _cmd_delete(args: argparse.Namespace) -> int:
    asyncio.run(_delete(args, _read_templates(args.statements or [])))
    print(f"deleted: {args.username}")
    return 0


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sqlcreds", description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    username = commands.add_parser("username", help="Render usernames from a template")
    username.add_argument("--template", default="", help="Username template (default grammar when empty)")
    username.add_argument("--display-name", required=True)
    username.add_argument("--role-name", required=True)
    username.add_argument("--count", type=int, default=1)
    username.set_defaults(handler=_cmd_username)

    prepare = commands.add_parser("prepare", help="Show how statement files will be executed")
    prepare.add_argument("files", nargs="+", help="Statement template files")
    prepare.set_defaults(handler=_cmd_prepare)

    for name, handler, help_text in (
        ("create", _cmd_create, "Create a database user"),
        ("delete", _cmd_delete, "Revoke a database user"),
    ):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("--config", default=str(CONFIG_FILE), help="TOML file with a [connection] table")
        sub.add_argument("--verify", action="store_true", help="Verify the connection during initialize")
        sub.add_argument("--timeout", type=float, default=None, help="Seconds before the call is abandoned")
        sub.set_defaults(handler=handler)
        if name == "create":
            sub.add_argument("--display-name", required=True)
            sub.add_argument("--role-name", required=True)
            sub.add_argument("--statements", action="append", required=True, help="Creation statement file")
            sub.add_argument("--ttl", type=int, default=DEFAULT_TTL, help="Seconds until the account expires")
        else:
            sub.add_argument("--username", required=True)
            sub.add_argument("--statements", action="append", help="Revocation statement file")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.handler(args)
    except CredentialError as exc:
        LOG.debug("Command failed", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


__all__ = ["main", "parse_args"]

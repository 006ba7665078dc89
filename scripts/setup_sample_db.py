"""Start a throwaway YugabyteDB node and write a sqlcreds config pointing at it."""

from __future__ import annotations

import argparse
import asyncio
import json
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlcreds.config import CONFIG_FILE, DEFAULT_PORT
from sqlcreds.connections import ConnectionManager
from sqlcreds.errors import ConnectionBackendError

IMAGE = "yugabytedb/yugabyte:latest"
ADMIN = {"host": "localhost", "username": "yugabyte", "password": "yugabyte", "db": "yugabyte"}

CREATE_SQL = """\
CREATE ROLE "{{name}}" WITH LOGIN PASSWORD '{{password}}' VALID UNTIL '{{expiration}}';
GRANT SELECT ON ALL TABLES IN SCHEMA public TO "{{name}}";
"""


def launch(name: str, port: int) -> None:
    cmd = ["docker", "run", "-d", "--rm", "--name", name, "-p", f"{port}:5433", IMAGE]
    cmd += ["bin/yugabyted", "start", "--background=false"]
    print("$", " ".join(cmd))
    subprocess.run(cmd, check=True)


async def wait_until_ready(config: dict[str, object], attempts: int = 60) -> bool:
    manager = ConnectionManager()
    try:
        for _ in range(attempts):
            try:
                await manager.initialize(config, verify=True, timeout=5.0)
            except (ConnectionBackendError, TimeoutError):
                await asyncio.sleep(2.0)
            else:
                return True
        return False
    finally:
        await manager.close()


def write_files(config_path: Path, config: dict[str, object]) -> Path:
    config_path.parent.mkdir(parents=True, exist_ok=True)
    body = "".join(f"{key} = {json.dumps(value)}\n" for key, value in config.items())
    config_path.write_text("[connection]\n" + body + 'max_connection_lifetime = "5m"\n')
    statements = config_path.with_name("create_user.sql")
    statements.write_text(CREATE_SQL)
    return statements


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--name", default="sqlcreds-yugabyte", help="Container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port for YSQL")
    parser.add_argument("--config", type=Path, default=CONFIG_FILE, help="Config file to write")
    args = parser.parse_args(argv)

    config = {**ADMIN, "port": args.port}
    try:
        launch(args.name, args.port)
    except (FileNotFoundError, subprocess.CalledProcessError) as exc:
        print(f"Could not start container: {exc}", file=sys.stderr)
        return 1
    if not asyncio.run(wait_until_ready(config)):
        print("YSQL did not accept connections in time.", file=sys.stderr)
        return 1
    statements = write_files(args.config, config)
    print(f"Wrote {args.config} and {statements}. Try:")
    print(f"  python -m sqlcreds create --config {args.config} --display-name demo --role-name reader --statements {statements}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

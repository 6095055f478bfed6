"""Remote admin client for triggering LangCMS sync runs."""

from __future__ import annotations

import argparse
import getpass
import json
import sys
from pathlib import Path
from typing import Any, NoReturn
from urllib.parse import urlparse

import httpx

CONFIG_FILE = ".langcms-admin.json"
_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


class AdminClient:
    """Thin wrapper over the sync and auth endpoints."""

    def __init__(
        self,
        server_url: str,
        token: str | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        timeout: float = 120.0,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self.client = httpx.Client(
            base_url=server_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> AdminClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _json(self, resp: httpx.Response) -> dict[str, Any]:
        resp.raise_for_status()
        result: dict[str, Any] = resp.json()
        return result

    def login(self, username: str, password: str) -> str:
        """Exchange admin credentials for an access token."""
        data = self._json(
            self.client.post(
                "/api/auth/token", json={"username": username, "password": password}
            )
        )
        token: str = data["access_token"]
        return token

    def status(self) -> dict[str, Any]:
        return self._json(self.client.get("/api/sync/status"))

    def diff(self) -> dict[str, Any]:
        return self._json(self.client.post("/api/sync/diff"))

    def pump(self) -> dict[str, Any]:
        return self._json(self.client.post("/api/sync/pump"))

    def pull(self) -> dict[str, Any]:
        return self._json(self.client.post("/api/sync/pull"))

    def clear(self) -> dict[str, Any]:
        return self._json(self.client.post("/api/sync/clear"))


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. https://example.com)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost servers. "
            "Use --allow-insecure-http only on trusted networks."
        )

    return normalized


def load_config(dir_path: Path) -> dict[str, str]:
    """Load saved server and token."""
    config_path = dir_path / CONFIG_FILE
    if not config_path.exists():
        return {}
    config: dict[str, str] = json.loads(config_path.read_text())
    return config


def save_config(dir_path: Path, config: dict[str, str]) -> None:
    """Save server and token; the file is readable by the owner only."""
    config_path = dir_path / CONFIG_FILE
    config_path.write_text(json.dumps(config, indent=2))
    config_path.chmod(0o600)


def format_report(command: str, data: dict[str, Any]) -> list[str]:
    """Human-readable lines for a sync response."""
    lines: list[str] = []
    if command == "diff":
        lines.append(f"Scanned {data.get('files_scanned', 0)} file(s):")
        lines.append(f"  New:       {len(data.get('new', []))}")
        lines.append(f"  Modified:  {len(data.get('modified', []))}")
        lines.append(f"  Deleted:   {len(data.get('deleted', []))}")
        lines.append(f"  Unchanged: {data.get('unchanged_count', 0)}")
        lines.extend(f"    + {p}" for p in data.get("new", []))
        lines.extend(f"    ~ {p}" for p in data.get("modified", []))
        lines.extend(f"    - {p}" for p in data.get("deleted", []))
    elif command == "pump":
        lines.append(f"Pump complete. {data.get('files_scanned', 0)} file(s) scanned.")
        for table, count in sorted(data.get("tables_loaded", {}).items()):
            lines.append(f"  {table}: {count}")
    elif command == "pull":
        lines.append(
            f"Pull complete. {data.get('applied', 0)} applied, "
            f"{data.get('deleted', 0)} deleted, {data.get('failed', 0)} failed."
        )
    elif command == "clear":
        total = sum(data.get("rows_deleted", {}).values())
        lines.append(f"Cleared {data.get('tables_cleared', 0)} table(s), {total} row(s).")
        if not data.get("cache_flushed", True):
            lines.append("  Warning: cache flush failed; stale entries expire by TTL")
    elif command == "status":
        lock = data.get("lock", {})
        if lock.get("locked"):
            lines.append(
                f"Sync in progress (holder {lock.get('holder')}, until {lock.get('expires_at')})"
            )
        else:
            lines.append("No sync in progress.")
        last = data.get("last_result")
        if last:
            lines.append(f"Last run: {last.get('operation')} finished {last.get('finished_at')}")
        else:
            lines.append("No recorded runs.")
    for err in data.get("errors", []):
        lines.append(f"  ERROR [{err['kind']}] {err['path']} ({err['table']}): {err['message']}")
    return lines


def _fail(message: str) -> NoReturn:
    print(f"Error: {message}")
    sys.exit(1)


def main(argv: list[str] | None = None, transport: httpx.BaseTransport | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="langcms-admin",
        description="Trigger and inspect LangCMS sync runs on a remote server",
    )
    parser.add_argument("--dir", "-d", default=".", help="Config directory (default: current)")
    parser.add_argument("--server", "-s", help="Server URL")
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )
    parser.add_argument("--username", "-u", help="Admin username")
    parser.add_argument("--token", help="Access token (skips login)")
    parser.add_argument("--json", action="store_true", help="Print raw JSON responses")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("token", help="Log in and save an access token")
    subparsers.add_parser("status", help="Show the last run and lock state")
    subparsers.add_parser("diff", help="Show what a pull would change")
    subparsers.add_parser("pump", help="Load the whole source tree")
    subparsers.add_parser("pull", help="Apply only changed files")
    clear_parser = subparsers.add_parser("clear", help="Delete all content store rows")
    clear_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return

    config_dir = Path(args.dir).resolve()
    config = load_config(config_dir)
    configured_server_url = args.server or config.get("server")
    if not configured_server_url:
        _fail("No server configured. Pass --server <url>.")
    try:
        server_url = validate_server_url(str(configured_server_url), args.allow_insecure_http)
    except ValueError as exc:
        _fail(str(exc))

    token = args.token or (config.get("token") if args.command != "token" else None)
    if token is None:
        username = args.username or config.get("username") or input("Username: ")
        password = getpass.getpass("Password: ")
        with AdminClient(server_url, transport=transport) as login_client:
            try:
                token = login_client.login(username, password)
            except httpx.HTTPStatusError as exc:
                _fail(f"Login failed ({exc.response.status_code})")
        config["username"] = username

    if args.command == "token":
        save_config(config_dir, {**config, "server": server_url, "token": str(token)})
        print(f"Saved access token to {config_dir / CONFIG_FILE}")
        return

    if args.command == "clear" and not args.yes:
        answer = input("Delete every content store row and flush the cache? [y/N] ")
        if answer.strip().lower() != "y":
            print("Aborted.")
            return

    with AdminClient(server_url, token, transport=transport) as client:
        try:
            data = getattr(client, args.command)()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 409:
                _fail("Another sync run is in progress")
            _fail(f"{args.command} failed ({exc.response.status_code}): {exc.response.text}")
        except httpx.TransportError as exc:
            _fail(f"Could not reach {server_url}: {exc}")

    if args.json:
        print(json.dumps(data, indent=2))
        return
    for line in format_report(args.command, data):
        print(line)


if __name__ == "__main__":
    main()

"""CLI entry point: authenticate with Vault and read a credential lease."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

import yaml
from rich.console import Console
from rich.markup import escape

from vault_courier.auth.credentials import AppRoleCredentials
from vault_courier.client import VaultClient
from vault_courier.errors import VaultClientError
from vault_courier.settings import SettingsError, VaultSettings

err_console = Console(stderr=True)


def _build_client(settings: VaultSettings, wrapped: bool) -> VaultClient:
    role_id = os.environ.get("VAULT_ROLE_ID")
    secret_id = os.environ.get("VAULT_SECRET_ID")
    if role_id and secret_id:
        return VaultClient(
            settings,
            approle=AppRoleCredentials(role_id=role_id, secret_id=secret_id),
            wrapped=wrapped,
        )
    token = os.environ.get("VAULT_TOKEN")
    if token:
        return VaultClient(settings, token=token)
    raise SettingsError("Set VAULT_ROLE_ID and VAULT_SECRET_ID, or VAULT_TOKEN")


async def _creds(client: VaultClient, args: argparse.Namespace) -> int:
    if args.static:
        lease = await client.read_static_credentials(args.role, args.mount)
    else:
        lease = await client.read_dynamic_credentials(args.role, args.mount)
    if lease is None:
        err_console.print(f"[red]No credentials available for role[/red] {escape(args.role)}")
        return 1
    print(yaml.safe_dump({
        "username": lease.username,
        "password": lease.password,
        "ttl_seconds": int(lease.time_to_live.total_seconds()),
        "expires_at": lease.expires_at.isoformat(),
    }, sort_keys=False), end="")
    return 0


async def _lookup_wrapping(client: VaultClient, args: argparse.Namespace) -> int:
    info = await client.wrapping.lookup(args.token)
    print(yaml.safe_dump({
        "creation_path": info.creation_path,
        "created_at": info.created_at.isoformat(),
        "ttl_seconds": int(info.time_to_live.total_seconds()),
    }, sort_keys=False), end="")
    return 0


async def _run(args: argparse.Namespace) -> int:
    settings = VaultSettings.load(args.config)
    async with _build_client(settings, args.wrapped) as client:
        if not await client.authenticate():
            err_console.print("[red]Vault authentication failed[/red]")
            return 1
        return await args.handler(client, args)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="vault-courier: authenticate with Vault and fetch leased secrets",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings.yaml (VAULT_* environment variables override it)",
    )
    parser.add_argument(
        "--wrapped",
        action="store_true",
        help="Treat VAULT_SECRET_ID as a response-wrapping token",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    creds = subparsers.add_parser("creds", help="Read database credentials for a role")
    creds.add_argument("role", help="Database role name")
    creds.add_argument("--static", action="store_true", help="Read a static role")
    creds.add_argument("--mount", default=None, help="Database engine mount path")
    creds.set_defaults(handler=_creds)

    lookup = subparsers.add_parser(
        "lookup-wrapping", help="Show metadata of a wrapping token without consuming it"
    )
    lookup.add_argument("token", help="Wrapping token")
    lookup.set_defaults(handler=_lookup_wrapping)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        sys.exit(asyncio.run(_run(args)))
    except SettingsError as exc:
        parser.error(str(exc))
    except VaultClientError as exc:
        err_console.print(f"[red]Vault error:[/red] {escape(str(exc))}")
        sys.exit(1)


if __name__ == "__main__":
    main()

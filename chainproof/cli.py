"""CLI entrypoints for the service, account administration, and the token metadata tool."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence

import uvicorn

from chainproof.config import get_settings, get_solana_settings
from chainproof.core.token_metadata import TokenMetadataError, TokenMetadataFetcher
from chainproof.db.session import Database
from chainproof.services.user_service import get_user_service


async def _run_token_metadata(mint_address: str, rpc_url: str | None) -> int:
    """Print extended metadata for a token mint as indented JSON."""
    solana = get_solana_settings()
    async with TokenMetadataFetcher(
        rpc_url=rpc_url or solana.rpc_url,
        commitment=solana.commitment,
        timeout=solana.timeout_seconds,
    ) as fetcher:
        try:
            metadata = await fetcher.fetch_extended_token_metadata(mint_address)
        except TokenMetadataError as exc:
            print(json.dumps({"error": str(exc)}, indent=2), file=sys.stderr)
            return 1

    print(json.dumps(metadata, indent=2))
    return 0


async def _run_set_user_active(email: str, is_active: bool) -> int:
    """Enable or disable the account registered under an email."""
    database = Database(get_settings().database.url)
    database.connect()
    user_service = get_user_service()
    try:
        async with database.session_factory() as db_session:
            user = await user_service.get_user_by_email(db_session=db_session, email=email)
            if user is None:
                print(json.dumps({"error": "User not found."}), file=sys.stderr)
                return 1
            user = await user_service.set_active(
                db_session=db_session, user_id=user.id, is_active=is_active
            )
    finally:
        await database.disconnect()

    print(json.dumps({"user_id": str(user.id), "email": user.email, "is_active": user.is_active}))
    return 0


def _run_serve(host: str | None, port: int | None) -> int:
    """Serve the HTTP API with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "chainproof.main:create_app",
        factory=True,
        host=host or settings.app.host,
        port=port or settings.app.port,
        log_level=settings.app.log_level.lower(),
    )
    return 0


def _build_parser() -> argparse.ArgumentParser:
    """Build command-line parser for supported commands."""
    parser = argparse.ArgumentParser(prog="chainproof")
    subcommands = parser.add_subparsers(dest="command", required=True)

    metadata_parser = subcommands.add_parser(
        "token-metadata", help="Fetch on-chain metadata for an SPL token mint."
    )
    metadata_parser.add_argument("mint_address", help="Base58 address of the token mint.")
    metadata_parser.add_argument(
        "--rpc-url",
        default=None,
        help="Override SOLANA__RPC_URL for this run.",
    )

    status_parser = subcommands.add_parser(
        "set-user-active", help="Enable or disable an account by email."
    )
    status_parser.add_argument("email")
    state = status_parser.add_mutually_exclusive_group(required=True)
    state.add_argument("--enable", dest="is_active", action="store_true")
    state.add_argument("--disable", dest="is_active", action="store_false")

    serve_parser = subcommands.add_parser("serve", help="Run the HTTP API.")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run CLI command."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "token-metadata":
        return asyncio.run(_run_token_metadata(args.mint_address, rpc_url=args.rpc_url))
    if args.command == "set-user-active":
        return asyncio.run(_run_set_user_active(args.email, is_active=args.is_active))
    if args.command == "serve":
        return _run_serve(host=args.host, port=args.port)
    parser.error("Unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())

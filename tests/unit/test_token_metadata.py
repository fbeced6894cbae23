"""Unit tests for the Solana token metadata fetcher."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from chainproof.core.token_metadata import RPCError, TokenMetadataError, TokenMetadataFetcher

RPC_URL = "https://rpc.local"
MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

_MINT_ACCOUNT = {
    "context": {"slot": 1},
    "value": {
        "data": {
            "parsed": {
                "type": "mint",
                "info": {
                    "decimals": 6,
                    "supply": "5034943880146452",
                    "mintAuthority": "2wmVCSfPxGPjrnMMn7rchp4uaeoTqN39mXFC2zhPdri9",
                    "freezeAuthority": None,
                    "isInitialized": True,
                },
            },
            "program": "spl-token",
        }
    },
}

_ASSET = {
    "content": {
        "json_uri": "https://example.com/usdc.json",
        "metadata": {"name": "USD Coin", "symbol": "USDC", "description": "Stablecoin"},
        "links": {"image": "https://example.com/usdc.png"},
    }
}


def _rpc_handler(results: dict[str, Any], calls: list[dict[str, Any]] | None = None):
    async def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        outcome = results.get(body["method"])
        if isinstance(outcome, httpx.Response):
            return outcome
        if isinstance(outcome, dict) and "error" in outcome:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **outcome})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": outcome})

    return handler


async def _fetcher(handler) -> tuple[TokenMetadataFetcher, httpx.AsyncClient]:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TokenMetadataFetcher(rpc_url=RPC_URL, http_client=http_client), http_client


@pytest.mark.asyncio
async def test_fetch_token_metadata_returns_mint_fields() -> None:
    calls: list[dict[str, Any]] = []
    fetcher, http_client = await _fetcher(_rpc_handler({"getAccountInfo": _MINT_ACCOUNT}, calls))
    async with http_client:
        metadata = await fetcher.fetch_token_metadata(MINT)

    assert metadata == {
        "mint": MINT,
        "decimals": 6,
        "supply": "5034943880146452",
        "mint_authority": "2wmVCSfPxGPjrnMMn7rchp4uaeoTqN39mXFC2zhPdri9",
        "freeze_authority": None,
        "is_initialized": True,
    }
    assert calls[0]["jsonrpc"] == "2.0"
    assert calls[0]["params"] == [MINT, {"encoding": "jsonParsed", "commitment": "confirmed"}]


@pytest.mark.asyncio
async def test_fetch_extended_metadata_merges_asset_fields() -> None:
    handler = _rpc_handler({"getAccountInfo": _MINT_ACCOUNT, "getAsset": _ASSET})
    fetcher, http_client = await _fetcher(handler)
    async with http_client:
        metadata = await fetcher.fetch_extended_token_metadata(MINT)

    assert metadata["decimals"] == 6
    assert metadata["name"] == "USD Coin"
    assert metadata["symbol"] == "USDC"
    assert metadata["uri"] == "https://example.com/usdc.json"
    assert metadata["image"] == "https://example.com/usdc.png"


@pytest.mark.asyncio
async def test_fetch_extended_metadata_ignores_unsupported_asset_method() -> None:
    handler = _rpc_handler(
        {
            "getAccountInfo": _MINT_ACCOUNT,
            "getAsset": {"error": {"code": -32601, "message": "Method not found"}},
        }
    )
    fetcher, http_client = await _fetcher(handler)
    async with http_client:
        metadata = await fetcher.fetch_extended_token_metadata(MINT)

    assert metadata["supply"] == "5034943880146452"
    assert "name" not in metadata


@pytest.mark.asyncio
async def test_non_mint_account_is_rejected() -> None:
    token_account = {
        "value": {"data": {"parsed": {"type": "account", "info": {}}, "program": "spl-token"}}
    }
    fetcher, http_client = await _fetcher(_rpc_handler({"getAccountInfo": token_account}))
    async with http_client:
        with pytest.raises(TokenMetadataError, match="Failed to fetch token metadata: "):
            await fetcher.fetch_token_metadata(MINT)
        assert await fetcher.validate_token_mint(MINT) is False


@pytest.mark.asyncio
async def test_missing_account_is_rejected() -> None:
    fetcher, http_client = await _fetcher(_rpc_handler({"getAccountInfo": {"value": None}}))
    async with http_client:
        with pytest.raises(TokenMetadataError, match="Account not found."):
            await fetcher.fetch_token_metadata(MINT)


@pytest.mark.asyncio
async def test_rpc_error_object_is_surfaced() -> None:
    handler = _rpc_handler(
        {"getAccountInfo": {"error": {"code": -32602, "message": "Invalid param: WrongSize"}}}
    )
    fetcher, http_client = await _fetcher(handler)
    async with http_client:
        with pytest.raises(TokenMetadataError) as exc_info:
            await fetcher.fetch_token_metadata("not-a-mint")

    assert "Invalid param: WrongSize" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, RPCError)
    assert exc_info.value.__cause__.code == -32602


@pytest.mark.asyncio
async def test_http_failure_and_network_errors_are_wrapped() -> None:
    fetcher, http_client = await _fetcher(
        _rpc_handler({"getAccountInfo": httpx.Response(503, text="unavailable")})
    )
    async with http_client:
        with pytest.raises(TokenMetadataError, match="status 503"):
            await fetcher.fetch_token_metadata(MINT)

    async def _down(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    fetcher, http_client = await _fetcher(_down)
    async with http_client:
        with pytest.raises(TokenMetadataError, match="RPC endpoint unavailable"):
            await fetcher.fetch_token_metadata(MINT)


@pytest.mark.asyncio
async def test_validate_token_mint_true_for_mint() -> None:
    fetcher, http_client = await _fetcher(_rpc_handler({"getAccountInfo": _MINT_ACCOUNT}))
    async with http_client:
        assert await fetcher.validate_token_mint(MINT) is True

"""Solana JSON-RPC client for SPL token mint metadata."""

from __future__ import annotations

from itertools import count
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(connect=2.0, read=10.0, write=5.0, pool=5.0)


class TokenMetadataError(Exception):
    """Raised when mint metadata cannot be fetched or decoded."""


class RPCError(TokenMetadataError):
    """Raised for transport failures and JSON-RPC error objects."""

    def __init__(self, detail: str, code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.code = code


class TokenMetadataFetcher:
    """Fetch on-chain mint state and optional off-chain NFT metadata."""

    def __init__(
        self,
        rpc_url: str,
        commitment: str = "confirmed",
        timeout: httpx.Timeout | float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._commitment = commitment
        self._request_ids = count(1)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout or DEFAULT_TIMEOUT)

    async def fetch_token_metadata(self, mint_address: str) -> dict[str, Any]:
        """Return decimals, supply, and authorities of an SPL token mint."""
        try:
            result = await self._call(
                "getAccountInfo",
                [mint_address, {"encoding": "jsonParsed", "commitment": self._commitment}],
            )
            info = self._parsed_mint_info(result)
        except TokenMetadataError as exc:
            raise TokenMetadataError(f"Failed to fetch token metadata: {exc}") from exc

        return {
            "mint": mint_address,
            "decimals": int(info["decimals"]),
            "supply": str(info["supply"]),
            "mint_authority": info.get("mintAuthority"),
            "freeze_authority": info.get("freezeAuthority"),
            "is_initialized": bool(info.get("isInitialized", False)),
        }

    async def fetch_extended_token_metadata(self, mint_address: str) -> dict[str, Any]:
        """Return mint metadata merged with name, symbol, and URI when available."""
        basic = await self.fetch_token_metadata(mint_address)
        try:
            asset = await self._call("getAsset", {"id": mint_address})
            extended = self._asset_fields(asset)
        except TokenMetadataError as exc:
            logger.info("token_asset_lookup_skipped", mint=mint_address, error=str(exc))
            extended = {}
        return {**basic, **extended}

    async def validate_token_mint(self, mint_address: str) -> bool:
        """Return True when the address resolves to an SPL token mint."""
        try:
            await self.fetch_token_metadata(mint_address)
        except TokenMetadataError:
            return False
        return True

    async def aclose(self) -> None:
        """Close underlying HTTP client if owned by this instance."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> TokenMetadataFetcher:
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        """Exit async context manager and close managed resources."""
        del exc_type, exc, tb
        await self.aclose()

    async def _call(self, method: str, params: list[Any] | dict[str, Any]) -> Any:
        """Execute one JSON-RPC request and return its ``result`` member."""
        body = {"jsonrpc": "2.0", "id": next(self._request_ids), "method": method, "params": params}
        try:
            response = await self._client.post(self._rpc_url, json=body)
        except httpx.RequestError as exc:
            raise RPCError(f"RPC endpoint unavailable ({exc.__class__.__name__}).") from exc
        if response.status_code >= 400:
            raise RPCError(f"RPC request failed with status {response.status_code}.")

        try:
            payload = response.json()
        except ValueError as exc:
            raise RPCError("RPC endpoint returned invalid JSON.") from exc
        if not isinstance(payload, dict):
            raise RPCError("RPC endpoint returned invalid JSON object.")

        error = payload.get("error")
        if isinstance(error, dict):
            raise RPCError(str(error.get("message", "RPC error.")), error.get("code"))
        if "result" not in payload:
            raise RPCError("RPC response has no result.")
        return payload["result"]

    @staticmethod
    def _parsed_mint_info(result: Any) -> dict[str, Any]:
        """Extract parsed SPL mint fields from a ``getAccountInfo`` result."""
        value = result.get("value") if isinstance(result, dict) else None
        if not isinstance(value, dict):
            raise TokenMetadataError("Account not found.")
        data = value.get("data")
        parsed = data.get("parsed") if isinstance(data, dict) else None
        if not isinstance(parsed, dict) or parsed.get("type") != "mint":
            raise TokenMetadataError("Account is not a token mint.")
        info = parsed.get("info")
        if not isinstance(info, dict) or "decimals" not in info or "supply" not in info:
            raise TokenMetadataError("Mint account data is incomplete.")
        return info

    @staticmethod
    def _asset_fields(asset: Any) -> dict[str, Any]:
        """Map a DAS ``getAsset`` result onto metadata fields."""
        if not isinstance(asset, dict):
            raise TokenMetadataError("Asset not found.")
        content = asset.get("content") or {}
        metadata = content.get("metadata") or {}
        links = content.get("links") or {}
        return {
            "name": metadata.get("name"),
            "symbol": metadata.get("symbol"),
            "uri": content.get("json_uri"),
            "image": links.get("image"),
            "description": metadata.get("description"),
        }

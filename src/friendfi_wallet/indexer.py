"""Indexer GraphQL client for fungible asset balances."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from .address import normalize_address
from .config import WalletSettings
from .exceptions import IndexerError

logger = logging.getLogger(__name__)

BALANCES_QUERY = """
query GetUserTokenBalances($owner: String!) {
  current_fungible_asset_balances(
    where: {owner_address: {_eq: $owner}, amount: {_gt: "0"}}
  ) {
    asset_type
    amount
    last_transaction_timestamp
  }
}
"""

BALANCE_QUERY = """
query GetUserTokenBalance($owner: String!, $asset: String!) {
  current_fungible_asset_balances(
    where: {owner_address: {_eq: $owner}, asset_type: {_eq: $asset}}
  ) {
    asset_type
    amount
    last_transaction_timestamp
  }
}
"""


@dataclass(frozen=True)
class TokenBalance:
    asset_type: str
    amount: int
    last_transaction_timestamp: Optional[str] = None


class IndexerClient:
    def __init__(self, url: str, timeout: float = 30.0):
        self._url = url
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: WalletSettings) -> "IndexerClient":
        return cls(settings.indexer_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        client = await self._get_client()
        response = await client.post(self._url, json={"query": query, "variables": variables or {}})
        if response.status_code >= 400:
            raise IndexerError(
                f"Indexer request failed ({response.status_code}): {response.text}",
                details={"status_code": response.status_code},
            )
        result = response.json()
        if result.get("errors"):
            message = result["errors"][0].get("message", "GraphQL query failed")
            raise IndexerError(message, details={"errors": result["errors"]})
        return result.get("data") or {}

    async def get_token_balances(self, owner: str) -> List[TokenBalance]:
        data = await self.query(BALANCES_QUERY, {"owner": normalize_address(owner)})
        return [
            TokenBalance(
                asset_type=row["asset_type"],
                amount=int(row["amount"]),
                last_transaction_timestamp=row.get("last_transaction_timestamp"),
            )
            for row in data.get("current_fungible_asset_balances", [])
        ]

    async def get_balance(self, owner: str, asset_type: str) -> int:
        """Balance in base units; 0 when the owner holds none."""
        data = await self.query(
            BALANCE_QUERY, {"owner": normalize_address(owner), "asset": asset_type}
        )
        rows = data.get("current_fungible_asset_balances", [])
        return int(rows[0]["amount"]) if rows else 0

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

"""Remote signer backend.

A remote signer holds private keys off-device and exposes a raw-sign API.
RemoteSignerPort is the boundary the Signer Adapter depends on; the
Privy embedded-wallet API is the production implementation.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .address import derive_address
from .config import DEFAULT_PRIVY_API_URL, WalletSettings
from .exceptions import RemoteSignerError
from .logging_utils import mask_address

logger = logging.getLogger(__name__)


def normalize_public_key(value: Optional[str]) -> Optional[str]:
    """Return a 0x-prefixed 32-byte hex key, or None when unusable.

    Some providers prefix the Ed25519 key with its one-byte scheme id (00).
    """
    if not value or not isinstance(value, str):
        return None
    hex_value = value[2:] if value[:2].lower() == "0x" else value
    hex_value = hex_value.lower()
    if len(hex_value) == 66 and hex_value.startswith("00"):
        hex_value = hex_value[2:]
    if len(hex_value) != 64:
        return None
    try:
        bytes.fromhex(hex_value)
    except ValueError:
        return None
    return "0x" + hex_value


@dataclass(frozen=True)
class RemoteWalletInfo:
    """Typed view of a remote wallet: one shape for every caller."""

    wallet_id: str
    address: str
    public_key: Optional[str] = None

    @property
    def derived_address(self) -> str:
        """Address that will actually sign; padded guess without a key."""
        return derive_address(self.public_key, fallback_address=self.address).address


@dataclass(frozen=True)
class RawSignResult:
    signature: str
    public_key: Optional[str] = None


class RemoteSignerPort(ABC):
    """Abstract interface for remote raw-signing providers."""

    @abstractmethod
    async def get_wallet(self, wallet_id: str) -> RemoteWalletInfo:
        """Fetch wallet address and (if exposed) public key."""

    @abstractmethod
    async def raw_sign(self, wallet_id: str, message: bytes) -> RawSignResult:
        """Sign raw message bytes and return signature (and key, if known)."""


class PrivyWalletClient(RemoteSignerPort):
    """Privy server wallet API client.

    Uses HTTP basic auth with the app id / app secret pair plus the
    ``privy-app-id`` header on every request.
    """

    def __init__(
        self,
        app_id: str,
        app_secret: str,
        base_url: str = DEFAULT_PRIVY_API_URL,
        timeout: float = 30.0,
    ):
        self._app_id = app_id
        self._app_secret = app_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: WalletSettings) -> "PrivyWalletClient":
        settings.require_remote_signer()
        return cls(
            app_id=settings.privy_app_id,
            app_secret=settings.privy_app_secret,
            base_url=settings.privy_api_url,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                auth=(self._app_id, self._app_secret),
                headers={
                    "privy-app-id": self._app_id,
                    "Content-Type": "application/json",
                },
            )
        return self._client

    async def _request(
        self, method: str, path: str, body: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.request(method, path, json=body)
        except httpx.HTTPError as e:
            raise RemoteSignerError(f"Remote signer {method} {path} unreachable: {e}") from e
        if response.status_code >= 400:
            raise RemoteSignerError(
                f"Remote signer {method} {path} failed with status {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        return response.json()

    async def get_wallet(self, wallet_id: str) -> RemoteWalletInfo:
        data = await self._request("GET", f"/v1/wallets/{wallet_id}")
        address = data.get("address")
        if not address:
            raise RemoteSignerError(
                f"Remote wallet {wallet_id} has no address", body=str(data)
            )
        public_key = normalize_public_key(data.get("public_key") or data.get("publicKey"))
        if public_key is None:
            logger.warning(f"Remote wallet {wallet_id} did not expose a public key")
        info = RemoteWalletInfo(wallet_id=wallet_id, address=address, public_key=public_key)
        logger.debug(
            f"Fetched remote wallet {wallet_id} address={mask_address(address)} "
            f"has_public_key={public_key is not None}"
        )
        return info

    async def raw_sign(self, wallet_id: str, message: bytes) -> RawSignResult:
        data = await self._request(
            "POST",
            f"/v1/wallets/{wallet_id}/raw_sign",
            {"params": {"hash": "0x" + message.hex()}},
        )
        result = data.get("data", data)
        signature = result.get("signature")
        if not signature:
            raise RemoteSignerError(
                f"Remote signer returned no signature for {wallet_id}", body=str(data)
            )
        return RawSignResult(
            signature=signature,
            public_key=normalize_public_key(result.get("public_key") or result.get("publicKey")),
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

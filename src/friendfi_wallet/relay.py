"""Gas relay (fee sponsorship) client.

The relay co-signs as fee payer and submits the transaction, so the sender
pays no gas. Requests are JSON-RPC over HTTPS authenticated with an API key.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx

from .config import WalletSettings
from .exceptions import (
    RelayError,
    RelayHTTPError,
    RelayProtocolError,
    RelayRejectedError,
    RelayTransientError,
    is_transient_error,
)
from .retry import RetryConfig, RetryExhausted, retry_async
from .signer import SignedEnvelope

logger = logging.getLogger(__name__)

SPONSOR_AND_SUBMIT_METHOD = "gas_sponsorAndSubmitSignedTransaction"


class TransactionStatus(str, Enum):
    """Lifecycle of a submitted transaction."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class PendingTransaction:
    hash: str
    status: TransactionStatus = TransactionStatus.PENDING
    sponsored: bool = True


def _hex(data: bytes) -> str:
    return "0x" + data.hex()


class GasRelayClient:
    """Sponsored submission with bounded retry on network-transient errors.

    Business rejections, HTTP 4xx and malformed responses are not retried.
    The relay is called at most ``1 + max_retries`` times per submit().
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        base_delay: float = 0.5,
    ):
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None
        self._retry_config = RetryConfig.exponential(
            max_retries=max_retries,
            base_delay=base_delay,
            retry_condition=is_transient_error,
        )

    @classmethod
    def from_settings(cls, settings: WalletSettings) -> "GasRelayClient":
        settings.require_relay()
        return cls(
            url=settings.relay_url,
            api_key=settings.relay_api_key,
            timeout=settings.relay_timeout_seconds,
            max_retries=settings.relay_max_retries,
            base_delay=settings.relay_base_delay,
        )

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_config

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        client = await self._get_client()
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        headers = {"Content-Type": "application/json", "X-Api-Key": self._api_key}

        try:
            response = await client.post(self._url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise RelayTransientError(
                f"Relay request timed out after {self._timeout}s"
            ) from e
        except httpx.TransportError as e:
            raise RelayTransientError(f"Relay fetch failed: {e}") from e

        body = response.text
        if not response.is_success or not body.strip():
            raise RelayHTTPError(
                f"Relay returned HTTP {response.status_code}: {body or '<empty body>'}",
                status_code=response.status_code,
                body=body,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RelayProtocolError(
                "Relay returned malformed JSON",
                status_code=response.status_code,
                body=body,
            ) from e

        if isinstance(data, dict) and data.get("error"):
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise RelayRejectedError(
                f"Relay RPC error ({method}): {message}",
                status_code=response.status_code,
                body=body,
            )

        if not isinstance(data, dict):
            raise RelayProtocolError(
                "Relay response is not a JSON object",
                status_code=response.status_code,
                body=body,
            )
        return data.get("result")

    async def _submit_once(self, signed: SignedEnvelope) -> PendingTransaction:
        result = await self._rpc(
            SPONSOR_AND_SUBMIT_METHOD,
            [_hex(signed.transaction_bytes), _hex(signed.authenticator_bytes)],
        )
        pending = result.get("pendingTransaction") if isinstance(result, dict) else None
        tx_hash = pending.get("hash") if isinstance(pending, dict) else None
        if not tx_hash:
            raise RelayProtocolError(
                "Relay response missing result.pendingTransaction.hash",
                body=json.dumps(result),
            )
        return PendingTransaction(hash=tx_hash, sponsored=True)

    async def submit(self, signed: SignedEnvelope) -> PendingTransaction:
        """Submit a signed fee-payer envelope for sponsorship."""
        if not signed.fee_payer_expected:
            raise RelayError("Envelope was built without a fee payer and cannot be sponsored")

        try:
            pending = await retry_async(self._submit_once, signed, config=self._retry_config)
        except RetryExhausted as e:
            logger.error(
                f"Relay gave up after {e.stats.attempts} attempts: {e.original_exception}"
            )
            raise e.original_exception from e

        logger.info(f"Relay accepted sponsored transaction {pending.hash}")
        return pending

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

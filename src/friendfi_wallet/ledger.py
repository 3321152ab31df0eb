"""Target ledger REST client (Movement / Aptos fullnode API)."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from .address import normalize_address
from .config import WalletSettings
from .exceptions import AccountNotIndexedError, LedgerError, TransactionSubmissionError
from .payload import TransactionPayload

logger = logging.getLogger(__name__)

BCS_SIGNED_TRANSACTION = "application/x.aptos.signed_transaction+bcs"


class LedgerClient:
    """Async client for the fullnode REST API.

    Module ABIs and the chain id are cached for the client's lifetime.
    """

    def __init__(self, base_url: str, timeout: float = 30.0):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None
        self._chain_id: Optional[int] = None
        self._abi_cache: Dict[str, Dict[str, Any]] = {}

    @classmethod
    def from_settings(cls, settings: WalletSettings) -> "LedgerClient":
        return cls(settings.ledger_url, timeout=settings.ledger_timeout_seconds)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        return await client.request(method, f"{self._base_url}{path}", **kwargs)

    @staticmethod
    def _error_from(response: httpx.Response, context: str) -> LedgerError:
        error_code = None
        message = response.text
        try:
            body = response.json()
            if isinstance(body, dict):
                error_code = body.get("error_code")
                message = body.get("message", message)
        except ValueError:
            pass
        return LedgerError(
            f"{context} failed ({response.status_code}): {message}",
            status_code=response.status_code,
            ledger_error_code=error_code,
        )

    async def _get_json(self, path: str, context: str) -> Any:
        response = await self._request("GET", path)
        if response.status_code >= 400:
            raise self._error_from(response, context)
        return response.json()

    async def get_ledger_info(self) -> Dict[str, Any]:
        return await self._get_json("/", "Ledger info")

    async def get_chain_id(self) -> int:
        if self._chain_id is None:
            info = await self.get_ledger_info()
            self._chain_id = int(info["chain_id"])
        return self._chain_id

    async def get_sequence_number(self, address: str) -> int:
        """Current sequence number; AccountNotIndexedError for unknown accounts."""
        address = normalize_address(address)
        response = await self._request("GET", f"/accounts/{address}")
        if response.status_code == 404:
            error = self._error_from(response, "Account lookup")
            if error.ledger_error_code in (None, "account_not_found"):
                raise AccountNotIndexedError(address)
            raise error
        if response.status_code >= 400:
            raise self._error_from(response, "Account lookup")
        return int(response.json()["sequence_number"])

    async def estimate_gas_price(self) -> int:
        data = await self._get_json("/estimate_gas_price", "Gas estimation")
        return int(data["gas_estimate"])

    async def get_module_abi(self, module_address: str, module_name: str) -> Dict[str, Any]:
        key = f"{normalize_address(module_address)}::{module_name}"
        if key not in self._abi_cache:
            data = await self._get_json(
                f"/accounts/{normalize_address(module_address)}/module/{module_name}",
                f"Module {key}",
            )
            abi = data.get("abi")
            if not abi:
                raise LedgerError(f"Module {key} has no ABI")
            self._abi_cache[key] = abi
        return self._abi_cache[key]

    async def get_function_params(
        self, module_address: str, module_name: str, function_name: str
    ) -> List[str]:
        abi = await self.get_module_abi(module_address, module_name)
        for fn in abi.get("exposed_functions", []):
            if fn.get("name") == function_name:
                return list(fn.get("params", []))
        raise LedgerError(
            f"Function {function_name} not found in {module_address}::{module_name}"
        )

    async def submit_transaction(self, signed_transaction: bytes) -> str:
        """Submit BCS signed transaction bytes; returns the transaction hash."""
        response = await self._request(
            "POST",
            "/transactions",
            content=signed_transaction,
            headers={"Content-Type": BCS_SIGNED_TRANSACTION},
        )
        if response.status_code >= 400:
            error = self._error_from(response, "Transaction submission")
            raise TransactionSubmissionError(
                error.message,
                status_code=error.status_code,
                ledger_error_code=error.ledger_error_code,
            )
        tx_hash = response.json().get("hash")
        if not tx_hash:
            raise TransactionSubmissionError("Ledger accepted transaction without a hash")
        return tx_hash

    async def get_transaction_by_hash(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Transaction JSON, or None while the ledger has not seen it."""
        response = await self._request("GET", f"/transactions/by_hash/{tx_hash}")
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise self._error_from(response, f"Transaction {tx_hash}")
        return response.json()

    async def view(self, payload: TransactionPayload) -> List[Any]:
        """Call a view function."""
        response = await self._request("POST", "/view", json=payload.to_dict())
        if response.status_code >= 400:
            raise self._error_from(response, f"View {payload.function_id}")
        return response.json()

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

"""
Tests for the ledger REST client.
"""
import json

import pytest

from conftest import LEDGER_URL, RFC_ADDRESS_1
from friendfi_wallet.exceptions import AccountNotIndexedError, LedgerError, TransactionSubmissionError
from friendfi_wallet.ledger import BCS_SIGNED_TRANSACTION, LedgerClient
from friendfi_wallet.payload import TransactionPayload

MODULE_URL = f"{LEDGER_URL}/accounts/0x{'0' * 62}aa/module/mod"
ABI = {
    "abi": {
        "address": "0xaa",
        "name": "mod",
        "exposed_functions": [
            {"name": "do_thing", "params": ["&signer", "u64"]},
            {"name": "other", "params": []},
        ],
    }
}


class TestAccounts:
    """Tests for account lookups."""

    @pytest.mark.asyncio
    async def test_sequence_number(self, httpx_mock):
        """Should parse the sequence number string."""
        httpx_mock.add_response(
            url=f"{LEDGER_URL}/accounts/{RFC_ADDRESS_1}", json={"sequence_number": "42"}
        )

        assert await LedgerClient(LEDGER_URL).get_sequence_number(RFC_ADDRESS_1) == 42

    @pytest.mark.asyncio
    async def test_account_not_found(self, httpx_mock):
        """Should map the ledger's account_not_found to AccountNotIndexedError."""
        httpx_mock.add_response(
            url=f"{LEDGER_URL}/accounts/{RFC_ADDRESS_1}",
            status_code=404,
            json={"message": "Account not found", "error_code": "account_not_found"},
        )

        with pytest.raises(AccountNotIndexedError) as exc_info:
            await LedgerClient(LEDGER_URL).get_sequence_number(RFC_ADDRESS_1)
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_server_error(self, httpx_mock):
        """Should raise LedgerError for other failures."""
        httpx_mock.add_response(
            url=f"{LEDGER_URL}/accounts/{RFC_ADDRESS_1}",
            status_code=503,
            json={"message": "unavailable", "error_code": "internal_error"},
        )

        with pytest.raises(LedgerError) as exc_info:
            await LedgerClient(LEDGER_URL).get_sequence_number(RFC_ADDRESS_1)
        assert not isinstance(exc_info.value, AccountNotIndexedError)
        assert exc_info.value.ledger_error_code == "internal_error"


class TestChainState:
    """Tests for chain id, gas price and module ABIs."""

    @pytest.mark.asyncio
    async def test_chain_id_is_cached(self, httpx_mock):
        """Should fetch ledger info once."""
        httpx_mock.add_response(url=f"{LEDGER_URL}/", json={"chain_id": 250, "ledger_version": "1"})
        client = LedgerClient(LEDGER_URL)

        assert await client.get_chain_id() == 250
        assert await client.get_chain_id() == 250
        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.asyncio
    async def test_gas_price(self, httpx_mock):
        """Should read gas_estimate."""
        httpx_mock.add_response(
            url=f"{LEDGER_URL}/estimate_gas_price",
            json={"gas_estimate": 100, "prioritized_gas_estimate": 150},
        )

        assert await LedgerClient(LEDGER_URL).estimate_gas_price() == 100

    @pytest.mark.asyncio
    async def test_function_params_from_cached_abi(self, httpx_mock):
        """Should resolve params and fetch each module once."""
        httpx_mock.add_response(url=MODULE_URL, json=ABI)
        client = LedgerClient(LEDGER_URL)

        assert await client.get_function_params("0xAA", "mod", "do_thing") == ["&signer", "u64"]
        assert await client.get_function_params("0xaa", "mod", "other") == []
        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.asyncio
    async def test_unknown_function(self, httpx_mock):
        """Should raise LedgerError for a function missing from the ABI."""
        httpx_mock.add_response(url=MODULE_URL, json=ABI)

        with pytest.raises(LedgerError):
            await LedgerClient(LEDGER_URL).get_function_params("0xaa", "mod", "missing")


class TestTransactions:
    """Tests for submission, lookup and view calls."""

    @pytest.mark.asyncio
    async def test_submit_transaction(self, httpx_mock):
        """Should post BCS bytes and return the hash."""
        httpx_mock.add_response(
            url=f"{LEDGER_URL}/transactions", method="POST", status_code=202, json={"hash": "0xabc"}
        )

        assert await LedgerClient(LEDGER_URL).submit_transaction(b"\x01\x02") == "0xabc"

        request = httpx_mock.get_request()
        assert request.headers["Content-Type"] == BCS_SIGNED_TRANSACTION
        assert request.content == b"\x01\x02"

    @pytest.mark.asyncio
    async def test_submit_rejected(self, httpx_mock):
        """Should raise TransactionSubmissionError with the ledger's code."""
        httpx_mock.add_response(
            url=f"{LEDGER_URL}/transactions",
            method="POST",
            status_code=400,
            json={"message": "Invalid transaction", "error_code": "vm_error"},
        )

        with pytest.raises(TransactionSubmissionError) as exc_info:
            await LedgerClient(LEDGER_URL).submit_transaction(b"\x01")
        assert exc_info.value.ledger_error_code == "vm_error"

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, httpx_mock):
        """Should return None while the hash is unknown."""
        httpx_mock.add_response(
            url=f"{LEDGER_URL}/transactions/by_hash/0xabc",
            status_code=404,
            json={"message": "not found", "error_code": "transaction_not_found"},
        )

        assert await LedgerClient(LEDGER_URL).get_transaction_by_hash("0xabc") is None

    @pytest.mark.asyncio
    async def test_view(self, httpx_mock):
        """Should post the JSON payload to /view."""
        httpx_mock.add_response(url=f"{LEDGER_URL}/view", method="POST", json=["1000"])
        payload = TransactionPayload(
            "0x1::primary_fungible_store::balance",
            ["0x1::fungible_asset::Metadata"],
            [RFC_ADDRESS_1, "0xa"],
        )

        assert await LedgerClient(LEDGER_URL).view(payload) == ["1000"]
        body = json.loads(httpx_mock.get_request().content)
        assert body["function"] == "0x1::primary_fungible_store::balance"
        assert body["arguments"] == [RFC_ADDRESS_1, "0xa"]

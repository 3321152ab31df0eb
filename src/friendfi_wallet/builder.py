"""Unsigned transaction construction against live ledger state."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from aptos_sdk.account_address import AccountAddress
from aptos_sdk.bcs import Serializer
from aptos_sdk.transactions import FeePayerRawTransaction, RawTransaction

from .address import normalize_address, to_account_address
from .config import WalletSettings
from .exceptions import AccountNotIndexedError
from .ledger import LedgerClient
from .logging_utils import mask_address
from .payload import TransactionPayload, build_entry_function
from .retry import RetryConfig, RetryExhausted, retry_async

logger = logging.getLogger(__name__)

# Placeholder fee payer the sender signs over; the relay fills in its own
ZERO_ADDRESS = AccountAddress.from_str("0x0")


@dataclass(frozen=True)
class UnsignedEnvelope:
    """A raw transaction plus whether a fee payer will be attached.

    Embeds a sequence number, so it is only valid for the call that built it.
    """

    raw_transaction: RawTransaction
    fee_payer_expected: bool

    @property
    def sender(self) -> str:
        return "0x" + self.raw_transaction.sender.address.hex()

    @property
    def sequence_number(self) -> int:
        return self.raw_transaction.sequence_number

    def signing_message(self) -> bytes:
        """Bytes the sender's key signs (domain prefix + BCS)."""
        if self.fee_payer_expected:
            return FeePayerRawTransaction(self.raw_transaction, [], None).keyed()
        return self.raw_transaction.keyed()

    def raw_transaction_bytes(self) -> bytes:
        serializer = Serializer()
        self.raw_transaction.serialize(serializer)
        return serializer.output()

    def transaction_bytes(self) -> bytes:
        """Raw transaction followed by the optional fee payer address."""
        serializer = Serializer()
        self.raw_transaction.serialize(serializer)
        serializer.bool(self.fee_payer_expected)
        if self.fee_payer_expected:
            serializer.struct(ZERO_ADDRESS)
        return serializer.output()


class TransactionBuilder:
    """Builds envelopes, waiting out accounts the ledger has not indexed yet."""

    def __init__(
        self,
        ledger: LedgerClient,
        max_gas_amount: int = 200_000,
        expiration_seconds: int = 20,
        max_attempts: int = 5,
        retry_delay: float = 2.0,
    ):
        self._ledger = ledger
        self._max_gas_amount = max_gas_amount
        self._expiration_seconds = expiration_seconds
        self._retry_config = RetryConfig.fixed(
            attempts=max_attempts,
            delay=retry_delay,
            retry_on=(AccountNotIndexedError,),
        )

    @classmethod
    def from_settings(cls, ledger: LedgerClient, settings: WalletSettings) -> "TransactionBuilder":
        return cls(
            ledger,
            max_gas_amount=settings.max_gas_amount,
            expiration_seconds=settings.expiration_seconds,
            max_attempts=settings.build_max_attempts,
            retry_delay=settings.build_retry_delay,
        )

    async def build(
        self, sender: str, payload: TransactionPayload, fee_payer: bool
    ) -> UnsignedEnvelope:
        """Build an envelope for ``payload`` sent by ``sender``.

        Only AccountNotIndexedError is retried (fixed delay); every other
        failure propagates on the first attempt.
        """
        try:
            return await retry_async(
                self._build_once, sender, payload, fee_payer, config=self._retry_config
            )
        except RetryExhausted as e:
            logger.error(
                f"Account {mask_address(sender)} still not indexed after "
                f"{e.stats.attempts} attempts"
            )
            raise e.original_exception from e

    async def _build_once(
        self, sender: str, payload: TransactionPayload, fee_payer: bool
    ) -> UnsignedEnvelope:
        sender = normalize_address(sender)
        sequence_number = await self._ledger.get_sequence_number(sender)
        chain_id = await self._ledger.get_chain_id()
        gas_unit_price = await self._ledger.estimate_gas_price()
        params = await self._ledger.get_function_params(
            payload.module_address, payload.module_name, payload.function_name
        )

        raw = RawTransaction(
            to_account_address(sender),
            sequence_number,
            build_entry_function(payload, params),
            self._max_gas_amount,
            gas_unit_price,
            int(time.time()) + self._expiration_seconds,
            chain_id,
        )
        logger.debug(
            f"Built {payload.function_id} for {mask_address(sender)} "
            f"seq={sequence_number} fee_payer={fee_payer}"
        )
        return UnsignedEnvelope(raw_transaction=raw, fee_payer_expected=fee_payer)

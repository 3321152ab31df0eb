"""End-to-end transaction flow: build, sign, submit, confirm.

Submission is an explicit two-step pipeline. The sponsored path runs once
(the relay client retries transient errors internally); if it fails, the
self-funded direct path runs at most once with a freshly built and signed
envelope. A failure of the direct path propagates.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional

import httpx

from .builder import TransactionBuilder
from .config import WalletSettings
from .confirmation import ConfirmationResult, ConfirmationWaiter
from .exceptions import (
    ConfigurationError,
    ConfirmationTimeoutError,
    LedgerError,
    SigningError,
    WalletSourceError,
)
from .identity import PublicKeyCache, WalletIdentity
from .ledger import LedgerClient
from .logging_utils import OperationType, WalletLogger, mask_address
from .payload import TransactionPayload
from .relay import GasRelayClient, PendingTransaction, TransactionStatus
from .remote import RemoteSignerPort
from .signer import SignerAdapter

logger = logging.getLogger(__name__)

# Never retried and never a reason to switch submission path
FATAL_ERRORS = (ConfigurationError, WalletSourceError, SigningError)


class SubmissionPath(str, Enum):
    SPONSORED = "sponsored"
    DIRECT = "direct"


class TransactionOutcome(str, Enum):
    """What the caller should do next."""
    CONFIRMED = "confirmed"
    FAILED_ON_CHAIN = "failed_on_chain"  # inspect the transaction
    SUBMISSION_FAILED = "submission_failed"  # retry later
    UNCONFIRMED = "unconfirmed"  # submitted, finality not observed in time
    CONFIGURATION_UNAVAILABLE = "configuration_unavailable"  # contact support


@dataclass
class SubmissionResult:
    path: SubmissionPath
    pending: Optional[PendingTransaction] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.pending is not None


@dataclass
class TransactionResult:
    outcome: TransactionOutcome
    hash: Optional[str] = None
    sponsored: bool = False
    confirmation: Optional[ConfirmationResult] = None
    error: Optional[Exception] = None
    metadata_error: Optional[str] = None
    attempts: List[SubmissionResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome == TransactionOutcome.CONFIRMED


class TransactionService:
    """Runs transactions for a resolved wallet identity."""

    MAX_DIRECT_ATTEMPTS = 1

    def __init__(
        self,
        builder: TransactionBuilder,
        signer: SignerAdapter,
        relay: Optional[GasRelayClient],
        ledger: LedgerClient,
        waiter: ConfirmationWaiter,
        fallback_delay: float = 2.0,
        network: str = "testnet",
    ):
        if relay is None:
            raise ConfigurationError("Gas relay client is not configured", setting="relay_api_key")
        self._builder = builder
        self._signer = signer
        self._relay = relay
        self._ledger = ledger
        self._waiter = waiter
        self._fallback_delay = fallback_delay
        self._log = WalletLogger(__name__, network=network)

    @classmethod
    def from_settings(
        cls,
        settings: WalletSettings,
        remote_signer: Optional[RemoteSignerPort] = None,
        key_cache: Optional[PublicKeyCache] = None,
    ) -> "TransactionService":
        """Wire up all collaborators; raises ConfigurationError up front."""
        relay = GasRelayClient.from_settings(settings)
        ledger = LedgerClient.from_settings(settings)
        return cls(
            builder=TransactionBuilder.from_settings(ledger, settings),
            signer=SignerAdapter(remote_signer, key_cache),
            relay=relay,
            ledger=ledger,
            waiter=ConfirmationWaiter(
                ledger,
                timeout=settings.confirmation_timeout,
                poll_interval=settings.confirmation_poll_interval,
            ),
            fallback_delay=settings.fallback_delay,
            network=settings.network,
        )

    async def try_sponsored(
        self, identity: WalletIdentity, payload: TransactionPayload
    ) -> SubmissionResult:
        try:
            async with self._log.operation_context(
                OperationType.RELAY_SUBMIT,
                sender=mask_address(identity.address),
                function=payload.function_id,
            ) as ctx:
                envelope = await self._builder.build(identity.address, payload, fee_payer=True)
                signed = await self._signer.sign(identity, envelope)
                pending = await self._relay.submit(signed)
                ctx.metadata["tx_hash"] = pending.hash
        except FATAL_ERRORS:
            raise
        except Exception as e:
            return SubmissionResult(SubmissionPath.SPONSORED, error=e)
        return SubmissionResult(SubmissionPath.SPONSORED, pending=pending)

    async def try_submit_direct(
        self, identity: WalletIdentity, payload: TransactionPayload
    ) -> SubmissionResult:
        try:
            async with self._log.operation_context(
                OperationType.DIRECT_SUBMIT,
                sender=mask_address(identity.address),
                function=payload.function_id,
            ) as ctx:
                envelope = await self._builder.build(identity.address, payload, fee_payer=False)
                signed = await self._signer.sign(identity, envelope)
                tx_hash = await self._ledger.submit_transaction(signed.signed_transaction_bytes)
                ctx.metadata["tx_hash"] = tx_hash
        except FATAL_ERRORS:
            raise
        except Exception as e:
            return SubmissionResult(SubmissionPath.DIRECT, error=e)
        return SubmissionResult(
            SubmissionPath.DIRECT, pending=PendingTransaction(hash=tx_hash, sponsored=False)
        )

    async def submit(
        self,
        identity: WalletIdentity,
        payload: TransactionPayload,
        attempts: Optional[List[SubmissionResult]] = None,
    ) -> PendingTransaction:
        """Sponsored submission with a single self-funded fallback."""
        attempts = attempts if attempts is not None else []

        sponsored = await self.try_sponsored(identity, payload)
        attempts.append(sponsored)
        if sponsored.ok:
            return sponsored.pending

        logger.warning(
            f"Sponsored submission failed for {mask_address(identity.address)}: "
            f"{sponsored.error}; falling back to direct submission"
        )

        last = sponsored
        direct_attempts = 0
        while direct_attempts < self.MAX_DIRECT_ATTEMPTS:
            direct_attempts += 1
            await asyncio.sleep(self._fallback_delay)
            last = await self.try_submit_direct(identity, payload)
            attempts.append(last)
            if last.ok:
                logger.info(f"Direct submission succeeded: {last.pending.hash} (sender pays gas)")
                return last.pending

        logger.error(f"Direct submission failed after sponsored failure: {last.error}")
        raise last.error from sponsored.error

    async def wait(self, pending: PendingTransaction) -> ConfirmationResult:
        async with self._log.operation_context(
            OperationType.CONFIRMATION, tx_hash=pending.hash
        ):
            result = await self._waiter.wait(pending.hash)
        pending.status = (
            TransactionStatus.CONFIRMED if result.success else TransactionStatus.FAILED
        )
        return result

    async def execute(
        self, identity: WalletIdentity, payload: TransactionPayload
    ) -> TransactionResult:
        """Submit and confirm; failures are reported as an outcome.

        Signing and wallet-source errors are raised.
        """
        attempts: List[SubmissionResult] = []
        try:
            pending = await self.submit(identity, payload, attempts)
        except ConfigurationError as e:
            logger.error(f"Configuration unavailable: {e}")
            return TransactionResult(
                TransactionOutcome.CONFIGURATION_UNAVAILABLE, error=e, attempts=attempts
            )
        except (WalletSourceError, SigningError):
            raise
        except Exception as e:
            return TransactionResult(
                TransactionOutcome.SUBMISSION_FAILED, error=e, attempts=attempts
            )

        try:
            confirmation = await self.wait(pending)
        except (ConfirmationTimeoutError, LedgerError, httpx.HTTPError) as e:
            return TransactionResult(
                TransactionOutcome.UNCONFIRMED,
                hash=pending.hash,
                sponsored=pending.sponsored,
                error=e,
                attempts=attempts,
            )

        return TransactionResult(
            TransactionOutcome.CONFIRMED if confirmation.success else TransactionOutcome.FAILED_ON_CHAIN,
            hash=pending.hash,
            sponsored=pending.sponsored,
            confirmation=confirmation,
            attempts=attempts,
        )

    async def execute_hybrid(
        self,
        identity: WalletIdentity,
        payload: TransactionPayload,
        record_metadata: Callable[[TransactionResult], Awaitable[Any]],
    ) -> TransactionResult:
        """On-chain first; off-chain metadata only after confirmed success.

        Metadata failures are logged and recorded on the result, never raised:
        the on-chain state is authoritative.
        """
        result = await self.execute(identity, payload)
        if not result.success:
            return result

        try:
            async with self._log.operation_context(
                OperationType.METADATA_SYNC, tx_hash=result.hash
            ):
                await record_metadata(result)
        except Exception as e:
            logger.error(f"Metadata sync for {result.hash} failed: {e}")
            result.metadata_error = str(e)
        return result

    async def close(self) -> None:
        await self._relay.close()
        await self._ledger.close()

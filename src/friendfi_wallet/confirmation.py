"""Waits for submitted transactions to reach finality."""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .exceptions import ConfirmationTimeoutError
from .ledger import LedgerClient

logger = logging.getLogger(__name__)

PENDING_TYPE = "pending_transaction"


@dataclass(frozen=True)
class ConfirmationResult:
    """Outcome of a committed transaction.

    ``success`` is False when the ledger applied and rejected the transaction
    (for example an aborted Move call); this is not raised.
    """

    hash: str
    success: bool
    vm_status: Optional[str] = None
    version: Optional[int] = None
    gas_used: Optional[int] = None

    @classmethod
    def from_transaction(cls, tx: Dict[str, Any]) -> "ConfirmationResult":
        return cls(
            hash=tx.get("hash", ""),
            success=bool(tx.get("success")),
            vm_status=tx.get("vm_status"),
            version=int(tx["version"]) if tx.get("version") is not None else None,
            gas_used=int(tx["gas_used"]) if tx.get("gas_used") is not None else None,
        )


class ConfirmationWaiter:
    """Polls the ledger until a transaction is committed."""

    def __init__(
        self,
        ledger: LedgerClient,
        timeout: float = 20.0,
        poll_interval: float = 1.0,
    ):
        self._ledger = ledger
        self._timeout = timeout
        self._poll_interval = poll_interval

    async def wait(self, tx_hash: str) -> ConfirmationResult:
        """Block this flow until ``tx_hash`` is committed or the timeout passes."""
        max_polls = max(1, math.ceil(self._timeout / self._poll_interval))

        for poll in range(max_polls):
            tx = await self._ledger.get_transaction_by_hash(tx_hash)
            if tx is not None and tx.get("type") != PENDING_TYPE:
                result = ConfirmationResult.from_transaction({"hash": tx_hash, **tx})
                if result.success:
                    logger.info(f"Transaction {tx_hash} committed (version={result.version})")
                else:
                    logger.warning(f"Transaction {tx_hash} failed on-chain: {result.vm_status}")
                return result

            logger.debug(f"Transaction {tx_hash} pending (poll {poll + 1}/{max_polls})")
            if poll + 1 < max_polls:
                await asyncio.sleep(self._poll_interval)

        raise ConfirmationTimeoutError(tx_hash, self._timeout)

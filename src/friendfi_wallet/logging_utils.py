"""
Logging helpers for wallet operations.

Every build / sign / submit / confirm step runs inside
``WalletLogger.operation_context`` so each step logs one completion line
with its duration, outcome and network. Addresses are masked in log output.
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional

from .config import get_settings

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "friendfi_wallet"
TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
JSON_FORMAT = (
    '{"ts": "%(asctime)s", "level": "%(levelname)s", '
    '"logger": "%(name)s", "msg": "%(message)s"}'
)
# Request-level chatter from the HTTP stack
NOISY_LOGGERS = ("httpx", "httpcore")


class OperationType(str, Enum):
    """Steps of the transaction flow."""
    RESOLVE_WALLET = "resolve_wallet"
    BUILD_TRANSACTION = "build_transaction"
    SIGN_TRANSACTION = "sign_transaction"
    RELAY_SUBMIT = "relay_submit"
    DIRECT_SUBMIT = "direct_submit"
    CONFIRMATION = "confirmation"
    METADATA_SYNC = "metadata_sync"


@dataclass
class OperationContext:
    """One timed step; ``metadata`` may be filled in while it runs."""

    operation_type: OperationType
    network: str
    operation_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    metadata: Dict[str, Any] = field(default_factory=dict)
    success: bool = False
    error: Optional[str] = None
    duration_ms: Optional[float] = None
    _started: float = field(default_factory=time.perf_counter, repr=False)

    def finish(self, error: Optional[BaseException] = None) -> None:
        self.duration_ms = (time.perf_counter() - self._started) * 1000
        self.success = error is None
        self.error = None if error is None else str(error)

    def summary(self) -> str:
        outcome = "ok" if self.success else f"failed: {self.error}"
        return (
            f"{self.operation_type.value} [{self.operation_id}] on {self.network} "
            f"{outcome} ({self.duration_ms or 0:.0f}ms)"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "operation_type": self.operation_type.value,
            "network": self.network,
            "success": self.success,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "metadata": dict(self.metadata),
        }


def mask_address(address: Optional[str]) -> str:
    """Shorten an address to ``0x1234...abcd`` for log output."""
    if not address:
        return "<none>"
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


class WalletLogger:
    """Per-module logger that times operations on one network."""

    def __init__(self, name: str = PACKAGE_LOGGER, network: str = "testnet"):
        self._logger = logging.getLogger(name)
        self._network = network

    @asynccontextmanager
    async def operation_context(
        self,
        operation_type: OperationType,
        **metadata: Any,
    ) -> AsyncIterator[OperationContext]:
        """Time the enclosed block and log its outcome; errors propagate.

        Usage:
            async with wallet_logger.operation_context(OperationType.RELAY_SUBMIT) as ctx:
                pending = await relay.submit(signed)
                ctx.metadata["tx_hash"] = pending.hash
        """
        ctx = OperationContext(operation_type, self._network, metadata=metadata)
        self._logger.debug(f"{operation_type.value} [{ctx.operation_id}] started")

        error: Optional[BaseException] = None
        try:
            yield ctx
        except Exception as e:
            error = e
            raise
        finally:
            ctx.finish(error)
            self._logger.log(
                logging.INFO if ctx.success else logging.WARNING,
                ctx.summary(),
                extra={"operation": ctx.to_dict()},
            )


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """Configure root logging.

    ``level`` defaults to the configured log_level. An explicit
    ``format_string`` takes precedence over ``json_format``.
    """
    level_name = (level or get_settings().log_level).upper()
    if format_string is None:
        format_string = JSON_FORMAT if json_format else TEXT_FORMAT
    logging.basicConfig(level=getattr(logging, level_name), format=format_string)
    logging.getLogger(PACKAGE_LOGGER).setLevel(level_name)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

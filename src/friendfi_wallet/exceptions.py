"""Exception hierarchy for the wallet and relay layer.

All errors raised by this package inherit from WalletException so callers
can catch one type at the service boundary and still branch on the
concrete failure:

    try:
        result = await service.execute(identity, payload)
    except ConfigurationError:
        ...  # contact support
    except WalletException as e:
        logger.error(e.to_dict())

Every exception carries:
- error_code: Machine-readable error code (e.g., "RELAY_REJECTED")
- message: Human-readable error message
- details: Optional additional context dictionary
"""
from __future__ import annotations

import re
from typing import Any, Optional

import httpx


class WalletException(Exception):
    """Base exception for all wallet errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "WALLET_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a loggable / API response dict."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Configuration & Validation
# =============================================================================

class ConfigurationError(WalletException):
    """Required configuration (endpoint, API key) is missing or invalid."""

    error_code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        setting: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if setting:
            details["setting"] = setting
        super().__init__(message, details=details)


class InvalidAddressError(WalletException):
    """Address or public key string is malformed."""

    error_code = "INVALID_ADDRESS"

    def __init__(self, value: Any, reason: str) -> None:
        super().__init__(
            f"Invalid address input {value!r}: {reason}",
            details={"value": str(value), "reason": reason},
        )


class ArgumentEncodingError(WalletException):
    """A function argument cannot be encoded for its declared Move type."""

    error_code = "ARGUMENT_ENCODING_ERROR"

    def __init__(self, type_tag: str, value: Any, reason: str) -> None:
        super().__init__(
            f"Cannot encode {value!r} as {type_tag}: {reason}",
            details={"type": type_tag, "value": repr(value)},
        )


# =============================================================================
# Wallet source & signing
# =============================================================================

class WalletSourceError(WalletException):
    """Wallet source selection or usage is invalid."""

    error_code = "WALLET_SOURCE_ERROR"


class NoWalletSourceError(WalletSourceError):
    """Signing was requested for an identity without a wallet source."""

    error_code = "NO_WALLET_SOURCE"

    def __init__(self) -> None:
        super().__init__("No wallet source resolved for this session; cannot sign")


class SigningError(WalletException):
    """Signing failed. Never retried."""

    error_code = "SIGNING_ERROR"


class MissingPublicKeyError(SigningError):
    """Remote wallet has no resolvable public key.

    Raised instead of falling back to a locally held key, which would sign
    with a different identity.
    """

    error_code = "MISSING_PUBLIC_KEY"

    def __init__(self, wallet_id: Optional[str]) -> None:
        super().__init__(
            f"No public key available for remote wallet {wallet_id}",
            details={"wallet_id": wallet_id},
        )


class RemoteSignerError(SigningError):
    """Remote signing provider returned an error or could not be reached."""

    error_code = "REMOTE_SIGNER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message, details={"status_code": status_code, "body": body})
        self.status_code = status_code
        self.body = body


# =============================================================================
# Ledger
# =============================================================================

class LedgerError(WalletException):
    """Target ledger REST API returned an error."""

    error_code = "LEDGER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        ledger_error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["status_code"] = status_code
        if ledger_error_code:
            details["ledger_error_code"] = ledger_error_code
        super().__init__(message, details=details)
        self.status_code = status_code
        self.ledger_error_code = ledger_error_code


class AccountNotIndexedError(LedgerError):
    """Sender account is not (yet) known to the ledger."""

    error_code = "ACCOUNT_NOT_INDEXED"
    retryable = True

    def __init__(self, address: str) -> None:
        super().__init__(
            f"Account not found: {address}",
            status_code=404,
            ledger_error_code="account_not_found",
            details={"address": address},
        )
        self.address = address


class TransactionSubmissionError(LedgerError):
    """Direct submission to the ledger was refused."""

    error_code = "TRANSACTION_SUBMISSION_ERROR"


class ConfirmationTimeoutError(WalletException):
    """Transaction did not reach finality within the timeout."""

    error_code = "CONFIRMATION_TIMEOUT"

    def __init__(self, tx_hash: str, timeout: float) -> None:
        super().__init__(
            f"Transaction {tx_hash} not confirmed within {timeout}s",
            details={"tx_hash": tx_hash, "timeout": timeout},
        )
        self.tx_hash = tx_hash


# =============================================================================
# Gas relay
# =============================================================================

class RelayError(WalletException):
    """Gas relay submission failed.

    Attributes:
        body: Raw response body, when one was received
    """

    error_code = "RELAY_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message, details={"status_code": status_code, "body": body})
        self.status_code = status_code
        self.body = body


class RelayHTTPError(RelayError):
    """Relay answered with a non-2xx status or an empty body."""

    error_code = "RELAY_HTTP_ERROR"


class RelayRejectedError(RelayError):
    """Relay returned a JSON-RPC error object for the transaction."""

    error_code = "RELAY_REJECTED"


class RelayProtocolError(RelayError):
    """Relay success response is missing result.pendingTransaction.hash."""

    error_code = "RELAY_PROTOCOL_ERROR"


class RelayTransientError(RelayError):
    """Network-level relay failure worth retrying."""

    error_code = "RELAY_TRANSIENT_ERROR"
    retryable = True


class IndexerError(WalletException):
    """Indexer GraphQL query failed."""

    error_code = "INDEXER_ERROR"


# =============================================================================
# Classification
# =============================================================================

TRANSIENT_ERROR_PATTERN = re.compile(
    r"ECONNRESET|connection reset|fetch failed|timed? ?out|timeout",
    re.IGNORECASE,
)


def is_transient_error(exc: BaseException) -> bool:
    """Return True for network-transient failures (timeouts, resets)."""
    if isinstance(exc, RelayTransientError):
        return True
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(exc, (RelayProtocolError, ConfigurationError, SigningError)):
        return False
    if isinstance(exc, RelayHTTPError) and exc.status_code and 400 <= exc.status_code < 500:
        return False
    return bool(TRANSIENT_ERROR_PATTERN.search(str(exc)))

"""Wallet abstraction and gasless transaction relay exports."""

from .address import (
    AddressProvenance,
    ResolvedAddress,
    derive_address,
    normalize_address,
    pad_address,
)
from .builder import TransactionBuilder, UnsignedEnvelope
from .config import WalletSettings, get_settings, set_settings
from .confirmation import ConfirmationResult, ConfirmationWaiter
from .exceptions import (
    AccountNotIndexedError,
    ConfigurationError,
    MissingPublicKeyError,
    NoWalletSourceError,
    RelayError,
    SigningError,
    WalletException,
)
from .identity import (
    PublicKeyCache,
    SessionState,
    WalletIdentity,
    WalletSource,
    WalletSourceResolver,
)
from .indexer import IndexerClient, TokenBalance
from .ledger import LedgerClient
from .local_wallet import LocalWallet, LocalWalletStore
from .payload import TransactionPayload, fungible_transfer_payload
from .relay import GasRelayClient, PendingTransaction, TransactionStatus
from .remote import PrivyWalletClient, RawSignResult, RemoteSignerPort, RemoteWalletInfo
from .service import TransactionOutcome, TransactionResult, TransactionService
from .signer import SignedEnvelope, SignerAdapter

__version__ = "0.1.0"

__all__ = [
    "AddressProvenance",
    "ResolvedAddress",
    "derive_address",
    "normalize_address",
    "pad_address",
    "TransactionBuilder",
    "UnsignedEnvelope",
    "WalletSettings",
    "get_settings",
    "set_settings",
    "ConfirmationResult",
    "ConfirmationWaiter",
    "AccountNotIndexedError",
    "ConfigurationError",
    "MissingPublicKeyError",
    "NoWalletSourceError",
    "RelayError",
    "SigningError",
    "WalletException",
    "PublicKeyCache",
    "SessionState",
    "WalletIdentity",
    "WalletSource",
    "WalletSourceResolver",
    "IndexerClient",
    "TokenBalance",
    "LedgerClient",
    "LocalWallet",
    "LocalWalletStore",
    "TransactionPayload",
    "fungible_transfer_payload",
    "GasRelayClient",
    "PendingTransaction",
    "TransactionStatus",
    "PrivyWalletClient",
    "RawSignResult",
    "RemoteSignerPort",
    "RemoteWalletInfo",
    "TransactionOutcome",
    "TransactionResult",
    "TransactionService",
    "SignedEnvelope",
    "SignerAdapter",
]

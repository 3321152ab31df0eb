"""Signer adapter over the local and remote signing backends."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from aptos_sdk import ed25519
from aptos_sdk.authenticator import AccountAuthenticator, Ed25519Authenticator
from aptos_sdk.bcs import Serializer
from aptos_sdk.transactions import SignedTransaction
from nacl.signing import VerifyKey

from .address import addresses_match, public_key_bytes
from .builder import UnsignedEnvelope
from .exceptions import (
    ConfigurationError,
    InvalidAddressError,
    MissingPublicKeyError,
    NoWalletSourceError,
    RemoteSignerError,
    SigningError,
)
from .identity import PublicKeyCache, WalletIdentity, WalletSource
from .local_wallet import load_private_key
from .logging_utils import mask_address
from .remote import RemoteSignerPort

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 64


@dataclass(frozen=True)
class SignedEnvelope:
    """Signed transaction material for one submission attempt."""

    sender: str
    fee_payer_expected: bool
    transaction_bytes: bytes
    raw_transaction_bytes: bytes
    authenticator_bytes: bytes
    public_key: str
    # Only set for self-funded envelopes, which can go straight to the ledger
    signed_transaction_bytes: Optional[bytes] = None


class SignerAdapter:
    """Signs envelopes with whichever backend the identity is locked to.

    A remote identity never falls back to a local key: signing with another
    backend would sign as another account.
    """

    def __init__(
        self,
        remote_signer: Optional[RemoteSignerPort] = None,
        key_cache: Optional[PublicKeyCache] = None,
    ):
        self._remote = remote_signer
        self.key_cache = key_cache if key_cache is not None else PublicKeyCache()

    async def sign(
        self, identity: Optional[WalletIdentity], envelope: UnsignedEnvelope
    ) -> SignedEnvelope:
        if identity is None or identity.source == WalletSource.NONE:
            raise NoWalletSourceError()

        message = envelope.signing_message()
        if identity.source == WalletSource.LOCAL:
            public_key, signature = self._sign_local(identity, message)
        else:
            public_key, signature = await self._sign_remote(identity, message, envelope.sender)

        authenticator = AccountAuthenticator(Ed25519Authenticator(public_key, signature))
        return self._assemble(envelope, authenticator, public_key)

    @staticmethod
    def _sign_local(
        identity: WalletIdentity, message: bytes
    ) -> Tuple[ed25519.PublicKey, ed25519.Signature]:
        if not identity.local_private_key:
            raise SigningError("Local identity has no private key")
        private_key = load_private_key(identity.local_private_key)
        return private_key.public_key(), private_key.sign(message)

    async def _sign_remote(
        self, identity: WalletIdentity, message: bytes, sender: str
    ) -> Tuple[ed25519.PublicKey, ed25519.Signature]:
        if self._remote is None:
            raise ConfigurationError("Remote identity but no remote signer configured")
        wallet_id = identity.remote_wallet_id
        if not wallet_id:
            raise SigningError("Remote identity has no wallet id")

        public_key = identity.remote_public_key or self.key_cache.get(wallet_id)
        lookup_error: Optional[Exception] = None
        if not public_key:
            try:
                info = await self._remote.get_wallet(wallet_id)
                public_key = info.public_key
            except RemoteSignerError as e:
                logger.warning(f"Public key lookup for remote wallet {wallet_id} failed: {e}")
                lookup_error = e

        result = await self._remote.raw_sign(wallet_id, message)

        if result.public_key and result.public_key != public_key:
            if public_key:
                logger.warning(
                    f"Remote wallet {wallet_id} signed with a different public key; "
                    f"replacing cached key"
                )
            public_key = result.public_key

        if not public_key:
            raise MissingPublicKeyError(wallet_id) from lookup_error

        verify_key = self._public_key(public_key)
        signature = self._signature(result.signature)
        if not verify_key.verify(message, signature):
            raise SigningError(
                f"Remote signature for wallet {wallet_id} does not verify against its public key"
            )

        identity.refresh_public_key(public_key)
        self.key_cache.set(wallet_id, identity.remote_public_key)
        if not addresses_match(identity.address, sender):
            # The signature is valid but authenticates another account
            raise SigningError(
                f"Remote wallet {wallet_id} signs as {mask_address(identity.address)}, "
                f"but the transaction was built for {mask_address(sender)}; rebuild and retry",
                details={"sender": sender, "signing_address": identity.address},
            )
        return verify_key, signature

    @staticmethod
    def _public_key(public_key: str) -> ed25519.PublicKey:
        try:
            return ed25519.PublicKey(VerifyKey(public_key_bytes(public_key)))
        except InvalidAddressError as e:
            raise SigningError(f"Malformed remote public key: {e.message}") from e

    @staticmethod
    def _signature(signature_hex: str) -> ed25519.Signature:
        value = signature_hex[2:] if signature_hex[:2].lower() == "0x" else signature_hex
        try:
            raw = bytes.fromhex(value)
        except ValueError as e:
            raise SigningError(f"Malformed remote signature: {e}") from e
        if len(raw) != SIGNATURE_LENGTH:
            raise SigningError(
                f"Malformed remote signature: expected {SIGNATURE_LENGTH} bytes, got {len(raw)}"
            )
        return ed25519.Signature(raw)

    @staticmethod
    def _assemble(
        envelope: UnsignedEnvelope,
        authenticator: AccountAuthenticator,
        public_key: ed25519.PublicKey,
    ) -> SignedEnvelope:
        serializer = Serializer()
        authenticator.serialize(serializer)

        signed_transaction = None
        if not envelope.fee_payer_expected:
            signed_transaction = SignedTransaction(
                envelope.raw_transaction, authenticator
            ).bytes()

        return SignedEnvelope(
            sender=envelope.sender,
            fee_payer_expected=envelope.fee_payer_expected,
            transaction_bytes=envelope.transaction_bytes(),
            raw_transaction_bytes=envelope.raw_transaction_bytes(),
            authenticator_bytes=serializer.output(),
            public_key="0x" + public_key.key.encode().hex(),
            signed_transaction_bytes=signed_transaction,
        )

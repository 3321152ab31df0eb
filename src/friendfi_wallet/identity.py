"""Wallet identity and per-session wallet source resolution.

A session uses exactly one signing backend. The first successful
resolution locks the session to it; later resolutions that would pick the
other backend are rejected until logout. Upstream auth providers report
availability asynchronously and may flicker during start-up, so without
the lock the session address could change between two transactions.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from .address import (
    AddressProvenance,
    address_from_public_key,
    addresses_match,
    derive_address,
    normalize_address,
)
from .local_wallet import LocalWallet
from .logging_utils import mask_address
from .remote import RemoteWalletInfo, normalize_public_key

logger = logging.getLogger(__name__)


class WalletSource(str, Enum):
    """Signing backend behind an identity."""
    REMOTE = "remote"
    LOCAL = "local"
    NONE = "none"


@dataclass
class WalletIdentity:
    """The single wallet a session signs with.

    ``address`` always corresponds to the key material that signs: the
    derived address when a public key is known, a padded guess otherwise.
    """

    address: str
    source: WalletSource
    local_private_key: Optional[str] = field(default=None, repr=False)
    remote_wallet_id: Optional[str] = None
    remote_public_key: Optional[str] = None
    provenance: AddressProvenance = AddressProvenance.DERIVED
    conflict_address: Optional[str] = None

    @property
    def has_conflict(self) -> bool:
        return self.conflict_address is not None

    def refresh_public_key(self, public_key: str) -> bool:
        """Replace the remote public key; returns True when it changed.

        The address is re-derived from the new key.
        """
        public_key = normalize_public_key(public_key) or public_key
        if public_key == self.remote_public_key:
            return False

        resolved = derive_address(public_key)
        if not addresses_match(resolved.address, self.address):
            logger.warning(
                f"Remote wallet {self.remote_wallet_id} address changed "
                f"{mask_address(self.address)} -> {mask_address(resolved.address)} "
                f"after public key refresh"
            )
        self.remote_public_key = public_key
        self.address = resolved.address
        self.provenance = resolved.provenance
        return True


class PublicKeyCache:
    """Remote wallet id -> (public key, address) correspondence."""

    def __init__(self) -> None:
        self._keys: Dict[str, str] = {}
        self._addresses: Dict[str, str] = {}

    def get(self, wallet_id: Optional[str]) -> Optional[str]:
        if not wallet_id:
            return None
        return self._keys.get(wallet_id)

    def address_for(self, wallet_id: str) -> Optional[str]:
        return self._addresses.get(wallet_id)

    def set(self, wallet_id: str, public_key: str) -> None:
        self._keys[wallet_id] = public_key
        self._addresses[wallet_id] = derive_address(public_key).address

    def clear(self) -> None:
        self._keys.clear()
        self._addresses.clear()

    def __contains__(self, wallet_id: object) -> bool:
        return wallet_id in self._keys

    def __len__(self) -> int:
        return len(self._keys)


@dataclass
class SessionState:
    """Wallet source lock owned by whoever manages session lifetime."""

    locked: bool = False
    identity: Optional[WalletIdentity] = None

    @property
    def source(self) -> WalletSource:
        if self.identity is None:
            return WalletSource.NONE
        return self.identity.source

    def lock(self, identity: WalletIdentity) -> None:
        self.identity = identity
        self.locked = True
        logger.info(
            f"Wallet source locked to {identity.source.value} "
            f"({mask_address(identity.address)})"
        )

    def logout(self, key_cache: Optional[PublicKeyCache] = None) -> None:
        """Clear the lock and, when given, the public key cache."""
        if self.identity is not None:
            logger.info(f"Clearing wallet source lock ({self.identity.source.value})")
        self.identity = None
        self.locked = False
        if key_cache is not None:
            key_cache.clear()


class WalletSourceResolver:
    """Selects the authoritative signing backend for a session.

    Remote takes priority over local whenever the remote wallet is
    authenticated, so one user never operates two wallets.
    """

    def __init__(self, key_cache: Optional[PublicKeyCache] = None):
        self.key_cache = key_cache if key_cache is not None else PublicKeyCache()

    def logout(self, session: SessionState) -> None:
        session.logout(self.key_cache)

    @staticmethod
    def select_source(
        remote: Optional[RemoteWalletInfo],
        remote_authenticated: bool,
        local: Optional[LocalWallet],
    ) -> WalletSource:
        if remote is not None and remote_authenticated:
            return WalletSource.REMOTE
        if local is not None and not remote_authenticated:
            return WalletSource.LOCAL
        return WalletSource.NONE

    def resolve(
        self,
        session: SessionState,
        remote: Optional[RemoteWalletInfo],
        remote_authenticated: bool,
        local: Optional[LocalWallet],
    ) -> Optional[WalletIdentity]:
        """Resolve (or re-confirm) the session's wallet identity.

        Safe to call on every upstream auth state change.
        """
        candidate = self.select_source(remote, remote_authenticated, local)

        if session.locked and session.identity is not None:
            current = session.identity
            if candidate == WalletSource.NONE:
                return current
            if candidate != current.source:
                logger.warning(
                    f"Ignoring switch to {candidate.value} wallet: session is locked "
                    f"to {current.source.value} ({mask_address(current.address)})"
                )
                return current
            self._refresh(current, remote, local)
            return current

        if candidate == WalletSource.NONE:
            return None

        if candidate == WalletSource.REMOTE:
            identity = self._remote_identity(remote, local)
        else:
            identity = self._local_identity(local)

        session.lock(identity)
        return identity

    def _remote_identity(
        self,
        remote: RemoteWalletInfo,
        local: Optional[LocalWallet],
    ) -> WalletIdentity:
        public_key = remote.public_key or self.key_cache.get(remote.wallet_id)
        if public_key:
            self.key_cache.set(remote.wallet_id, public_key)
        resolved = derive_address(public_key, fallback_address=remote.address)
        if not resolved.is_derived:
            logger.warning(
                f"Remote wallet {remote.wallet_id} has no public key yet; using padded "
                f"address {mask_address(resolved.address)} until one is available"
            )

        identity = WalletIdentity(
            address=resolved.address,
            source=WalletSource.REMOTE,
            remote_wallet_id=remote.wallet_id,
            remote_public_key=public_key,
            provenance=resolved.provenance,
        )

        if local is not None and not addresses_match(local.address, identity.address):
            # Kept as a flag: a stored local wallet whose history lives at another address
            identity.conflict_address = normalize_address(local.address)
            logger.warning(
                f"Wallet conflict: remote wallet {mask_address(identity.address)} differs "
                f"from stored local wallet {mask_address(local.address)}; using remote"
            )
        return identity

    @staticmethod
    def _local_identity(local: LocalWallet) -> WalletIdentity:
        return WalletIdentity(
            address=address_from_public_key(local.public_key_hex()),
            source=WalletSource.LOCAL,
            local_private_key=local.private_key_hex,
            provenance=AddressProvenance.DERIVED,
        )

    def _refresh(
        self,
        current: WalletIdentity,
        remote: Optional[RemoteWalletInfo],
        local: Optional[LocalWallet],
    ) -> None:
        if current.source == WalletSource.REMOTE and remote is not None:
            if remote.wallet_id != current.remote_wallet_id:
                logger.warning(
                    f"Ignoring remote wallet {remote.wallet_id}: session is locked to "
                    f"{current.remote_wallet_id}"
                )
                return
            if remote.public_key and current.refresh_public_key(remote.public_key):
                self.key_cache.set(remote.wallet_id, current.remote_public_key)
        elif current.source == WalletSource.LOCAL and local is not None:
            if not addresses_match(local.address, current.address):
                logger.warning(
                    f"Ignoring local wallet {mask_address(local.address)}: session is "
                    f"locked to {mask_address(current.address)}"
                )

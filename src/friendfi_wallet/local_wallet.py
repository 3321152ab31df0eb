"""Locally held Ed25519 wallets.

The local backend keeps a private key in the client's own storage. Keys are
either random or derived from a locally authenticated secret (a seed held
behind a biometric prompt), in which case the same seed always yields the
same key and therefore the same address.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from aptos_sdk import ed25519
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from nacl.signing import SigningKey

from .address import address_from_public_key, addresses_match
from .exceptions import InvalidAddressError, SigningError
from .logging_utils import mask_address

logger = logging.getLogger(__name__)

PRIVATE_KEY_LENGTH = 32
DEFAULT_SALT = "friendfi-move-salt"
DEFAULT_ITERATIONS = 100_000


def derive_private_key_from_seed(
    seed: bytes,
    salt: str = DEFAULT_SALT,
    iterations: int = DEFAULT_ITERATIONS,
) -> str:
    """Derive a 0x-prefixed Ed25519 private key from a seed (PBKDF2-SHA256)."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=PRIVATE_KEY_LENGTH,
        salt=salt.encode("utf-8"),
        iterations=iterations,
    )
    return "0x" + kdf.derive(seed).hex()


def load_private_key(private_key_hex: str) -> ed25519.PrivateKey:
    """Parse a hex private key; malformed material raises SigningError."""
    value = private_key_hex.strip()
    if value.startswith("ed25519-priv-"):
        value = value[len("ed25519-priv-"):]
    if value[:2].lower() == "0x":
        value = value[2:]
    try:
        raw = bytes.fromhex(value)
    except ValueError as e:
        raise SigningError(f"Malformed local private key: {e}") from e
    if len(raw) != PRIVATE_KEY_LENGTH:
        raise SigningError(
            f"Malformed local private key: expected {PRIVATE_KEY_LENGTH} bytes, got {len(raw)}"
        )
    return ed25519.PrivateKey(SigningKey(raw))


@dataclass(frozen=True)
class LocalWallet:
    """A locally stored wallet: address plus private key hex."""

    address: str
    private_key_hex: str

    @classmethod
    def from_private_key(cls, private_key_hex: str) -> "LocalWallet":
        key = load_private_key(private_key_hex)
        address = address_from_public_key(key.public_key().key.encode())
        return cls(address=address, private_key_hex=private_key_hex)

    @classmethod
    def from_seed(
        cls,
        seed: bytes,
        salt: str = DEFAULT_SALT,
        iterations: int = DEFAULT_ITERATIONS,
    ) -> "LocalWallet":
        return cls.from_private_key(derive_private_key_from_seed(seed, salt, iterations))

    @classmethod
    def generate(cls) -> "LocalWallet":
        return cls.from_private_key("0x" + os.urandom(PRIVATE_KEY_LENGTH).hex())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LocalWallet":
        """Load a stored wallet; the address is always re-derived from the key."""
        wallet = cls.from_private_key(data["privateKeyHex"])
        stored = data.get("address")
        try:
            matches = addresses_match(stored, wallet.address)
        except InvalidAddressError:
            matches = False
        if stored and not matches:
            logger.warning(
                f"Stored local wallet address {mask_address(stored)} does not match its key; "
                f"using derived address {mask_address(wallet.address)}"
            )
        return wallet

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "privateKeyHex": self.private_key_hex}

    def private_key(self) -> ed25519.PrivateKey:
        return load_private_key(self.private_key_hex)

    def public_key_hex(self) -> str:
        return "0x" + self.private_key().public_key().key.encode().hex()


class LocalWalletStore:
    """Persists a single local wallet as JSON on disk."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[LocalWallet]:
        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return LocalWallet.from_dict(data)
        except (ValueError, KeyError, SigningError) as e:
            logger.error(f"Stored local wallet at {self._path} is unreadable: {e}")
            return None

    def save(self, wallet: LocalWallet) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(wallet.to_dict()), encoding="utf-8")
        logger.info(f"Saved local wallet {mask_address(wallet.address)}")

    def load_or_create(self) -> LocalWallet:
        wallet = self.load()
        if wallet is None:
            wallet = LocalWallet.generate()
            self.save(wallet)
        return wallet

    def clear(self) -> None:
        if self._path.exists():
            self._path.unlink()

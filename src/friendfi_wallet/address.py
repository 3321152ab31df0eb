"""Address derivation for Move accounts.

An account address is the authentication key of its Ed25519 public key:
sha3_256(public_key || 0x00), rendered as 0x-prefixed 64 hex digits.

When no public key is known yet, a short-form address (for example the
20-byte address an embedded-wallet provider reports) can be left-padded
to full width. That address is only a guess; results carry their
provenance so callers can redo lookups once the real key is available.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from aptos_sdk import ed25519
from aptos_sdk.account_address import AccountAddress
from nacl.signing import VerifyKey

from .exceptions import InvalidAddressError

ADDRESS_HEX_LENGTH = 64
PUBLIC_KEY_LENGTH = 32

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")


class AddressProvenance(str, Enum):
    """How an address was obtained."""
    DERIVED = "derived"
    PADDED = "padded"


@dataclass(frozen=True)
class ResolvedAddress:
    address: str
    provenance: AddressProvenance

    @property
    def is_derived(self) -> bool:
        return self.provenance == AddressProvenance.DERIVED


def _strip_hex(value: str) -> str:
    value = value.strip()
    if value[:2].lower() == "0x":
        value = value[2:]
    if not _HEX_RE.match(value):
        raise InvalidAddressError(value, "not a hex string")
    return value.lower()


def public_key_bytes(public_key: Union[bytes, str]) -> bytes:
    """Coerce a hex string or raw bytes into a 32-byte Ed25519 public key."""
    if isinstance(public_key, str):
        hex_value = _strip_hex(public_key)
        if len(hex_value) % 2:
            raise InvalidAddressError(public_key, "odd-length hex")
        raw = bytes.fromhex(hex_value)
    else:
        raw = bytes(public_key)
    if len(raw) != PUBLIC_KEY_LENGTH:
        raise InvalidAddressError(
            public_key, f"expected {PUBLIC_KEY_LENGTH} bytes, got {len(raw)}"
        )
    return raw


def pad_address(address: str) -> str:
    """Left-pad a short-form address with zero bytes to full width."""
    hex_value = _strip_hex(address)
    if not hex_value:
        raise InvalidAddressError(address, "empty address")
    if len(hex_value) > ADDRESS_HEX_LENGTH:
        raise InvalidAddressError(address, "longer than 32 bytes")
    return "0x" + hex_value.zfill(ADDRESS_HEX_LENGTH)


def normalize_address(address: str) -> str:
    """Canonical form used for comparisons and lookups."""
    return pad_address(address)


def addresses_match(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return normalize_address(a) == normalize_address(b)


def address_from_public_key(public_key: Union[bytes, str]) -> str:
    key = ed25519.PublicKey(VerifyKey(public_key_bytes(public_key)))
    account = AccountAddress.from_key(key)
    return "0x" + account.address.hex()


def derive_address(
    public_key: Optional[Union[bytes, str]] = None,
    fallback_address: Optional[str] = None,
) -> ResolvedAddress:
    """Derive the on-chain address for a public key.

    Falls back to padding ``fallback_address`` when no public key is given.
    Raises InvalidAddressError when neither input is usable.
    """
    if public_key:
        return ResolvedAddress(
            address=address_from_public_key(public_key),
            provenance=AddressProvenance.DERIVED,
        )
    if fallback_address:
        return ResolvedAddress(
            address=pad_address(fallback_address),
            provenance=AddressProvenance.PADDED,
        )
    raise InvalidAddressError(None, "no public key or fallback address")


def to_account_address(address: str) -> AccountAddress:
    return AccountAddress.from_str_relaxed(normalize_address(address))

"""
Pytest configuration and fixtures for friendfi_wallet tests.
"""
from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
if str(package_src) not in sys.path:
    sys.path.insert(0, str(package_src))

from friendfi_wallet.config import WalletSettings  # noqa: E402
from friendfi_wallet.ledger import LedgerClient  # noqa: E402
from friendfi_wallet.local_wallet import LocalWallet, load_private_key  # noqa: E402
from friendfi_wallet.remote import RawSignResult, RemoteSignerPort, RemoteWalletInfo  # noqa: E402

# RFC 8032 section 7.1, test 1
RFC_PRIVATE_KEY_1 = "0x9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"
RFC_PUBLIC_KEY_1 = "0xd75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"
RFC_ADDRESS_1 = "0x63c5215e87770d17b9f4cd47c777e322f4eb152cfd2054c1080fd9d57c48913b"

# RFC 8032 section 7.1, test 2
RFC_PRIVATE_KEY_2 = "0x4ccd089b28ff96da9db6c346ec114e0f5b8a319f35aba624da8cf6ed4fb8a6fb"
RFC_PUBLIC_KEY_2 = "0x3d4017c3e843895a92b70aa74d1b7ebc9c982ccf2ec4968cc0cd55f12af4660c"
RFC_ADDRESS_2 = "0xc0b0918edf3a763a3001744584b0d26873ec883e02af5e7cfa88e50240ac1032"

LEDGER_URL = "https://ledger.test/v1"
RELAY_URL = "https://relay.test/movement/gas/v1"
INDEXER_URL = "https://indexer.test/v1/graphql"
PRIVY_URL = "https://privy.test"


class FakeRemoteSigner(RemoteSignerPort):
    """Remote signer backed by a local key, with call counters."""

    def __init__(
        self,
        private_key_hex: str = RFC_PRIVATE_KEY_2,
        wallet_id: str = "wallet-123",
        expose_public_key: bool = True,
        return_public_key: bool = True,
    ):
        self._key = load_private_key(private_key_hex)
        self.wallet_id = wallet_id
        self.expose_public_key = expose_public_key
        self.return_public_key = return_public_key
        self.get_wallet_calls = 0
        self.raw_sign_calls = 0

    @property
    def public_key(self) -> str:
        return "0x" + self._key.public_key().key.encode().hex()

    def info(self, address: str = "0x1234567890abcdef1234567890abcdef12345678") -> RemoteWalletInfo:
        return RemoteWalletInfo(
            wallet_id=self.wallet_id,
            address=address,
            public_key=self.public_key if self.expose_public_key else None,
        )

    async def get_wallet(self, wallet_id: str) -> RemoteWalletInfo:
        self.get_wallet_calls += 1
        return self.info()

    async def raw_sign(self, wallet_id: str, message: bytes) -> RawSignResult:
        self.raw_sign_calls += 1
        signature = self._key.sign(message)
        return RawSignResult(
            signature="0x" + signature.data().hex(),
            public_key=self.public_key if self.return_public_key else None,
        )


@pytest.fixture
def settings():
    """Settings pointing at test endpoints."""
    return WalletSettings(
        _env_file=None,
        ledger_url=LEDGER_URL,
        relay_url=RELAY_URL,
        indexer_url=INDEXER_URL,
        relay_api_key="test-relay-key",
        privy_api_url=PRIVY_URL,
        privy_app_id="app-id",
        privy_app_secret="app-secret",
    )


@pytest.fixture
def no_sleep():
    """Replace asyncio.sleep so retry delays are recorded, not waited."""
    with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def local_wallet():
    return LocalWallet.from_private_key(RFC_PRIVATE_KEY_1)


@pytest.fixture
def remote_signer():
    return FakeRemoteSigner()


@pytest.fixture
def mock_ledger():
    """LedgerClient double returning a fresh, indexed account."""
    ledger = AsyncMock(spec=LedgerClient)
    ledger.get_sequence_number.return_value = 7
    ledger.get_chain_id.return_value = 250
    ledger.estimate_gas_price.return_value = 100
    ledger.get_function_params.return_value = ["&signer", "u64"]
    ledger.submit_transaction.return_value = "0x" + "d" * 64
    return ledger


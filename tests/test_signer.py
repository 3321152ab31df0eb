"""
Tests for the SignerAdapter.
"""
import pytest
import pytest_asyncio
from aptos_sdk.authenticator import AccountAuthenticator
from aptos_sdk.bcs import Deserializer

from conftest import (
    RFC_ADDRESS_1,
    RFC_ADDRESS_2,
    RFC_PRIVATE_KEY_1,
    RFC_PUBLIC_KEY_1,
    RFC_PUBLIC_KEY_2,
    FakeRemoteSigner,
)
from friendfi_wallet.builder import TransactionBuilder
from friendfi_wallet.exceptions import (
    ConfigurationError,
    MissingPublicKeyError,
    NoWalletSourceError,
    SigningError,
)
from friendfi_wallet.identity import PublicKeyCache, WalletIdentity, WalletSource
from friendfi_wallet.local_wallet import load_private_key
from friendfi_wallet.payload import TransactionPayload
from friendfi_wallet.signer import SignerAdapter

PAYLOAD = TransactionPayload("0xAA::mod::do_thing", [], ["1"])


def local_identity():
    return WalletIdentity(
        address=RFC_ADDRESS_1,
        source=WalletSource.LOCAL,
        local_private_key=RFC_PRIVATE_KEY_1,
    )


def remote_identity(public_key=RFC_PUBLIC_KEY_2):
    return WalletIdentity(
        address=RFC_ADDRESS_2,
        source=WalletSource.REMOTE,
        remote_wallet_id="wallet-123",
        remote_public_key=public_key,
    )


def decode_authenticator(data: bytes) -> AccountAuthenticator:
    return AccountAuthenticator.deserialize(Deserializer(data))


@pytest_asyncio.fixture
async def envelope(mock_ledger):
    return await TransactionBuilder(mock_ledger).build(RFC_ADDRESS_2, PAYLOAD, fee_payer=True)


class TestLocalSigning:
    """Tests for the local backend."""

    @pytest.mark.asyncio
    async def test_signs_with_local_key(self, mock_ledger):
        """Should produce a verifiable Ed25519 authenticator."""
        envelope = await TransactionBuilder(mock_ledger).build(RFC_ADDRESS_1, PAYLOAD, fee_payer=True)

        signed = await SignerAdapter().sign(local_identity(), envelope)

        authenticator = decode_authenticator(signed.authenticator_bytes)
        assert authenticator.verify(envelope.signing_message())
        assert signed.public_key == RFC_PUBLIC_KEY_1
        assert signed.fee_payer_expected
        assert signed.signed_transaction_bytes is None

    @pytest.mark.asyncio
    async def test_direct_envelope_has_signed_transaction(self, mock_ledger):
        """Should assemble full signed transaction bytes without a fee payer."""
        envelope = await TransactionBuilder(mock_ledger).build(RFC_ADDRESS_1, PAYLOAD, fee_payer=False)

        signed = await SignerAdapter().sign(local_identity(), envelope)

        assert signed.signed_transaction_bytes.startswith(envelope.raw_transaction_bytes())

    @pytest.mark.asyncio
    async def test_malformed_local_key(self, envelope):
        """Should raise SigningError for malformed key material."""
        identity = local_identity()
        identity.local_private_key = "0x1234"

        with pytest.raises(SigningError):
            await SignerAdapter().sign(identity, envelope)


class TestRemoteSigning:
    """Tests for the remote backend."""

    @pytest.mark.asyncio
    async def test_uses_cached_public_key(self, envelope, remote_signer):
        """Should not fetch the wallet when the key is known."""
        signed = await SignerAdapter(remote_signer).sign(remote_identity(), envelope)

        assert remote_signer.get_wallet_calls == 0
        assert remote_signer.raw_sign_calls == 1
        assert decode_authenticator(signed.authenticator_bytes).verify(envelope.signing_message())

    @pytest.mark.asyncio
    async def test_fetches_public_key_when_unknown(self, envelope):
        """Should look up the public key from the provider."""
        remote = FakeRemoteSigner(return_public_key=False)
        adapter = SignerAdapter(remote)
        identity = remote_identity(public_key=None)

        signed = await adapter.sign(identity, envelope)

        assert remote.get_wallet_calls == 1
        assert signed.public_key == RFC_PUBLIC_KEY_2
        assert adapter.key_cache.get("wallet-123") == RFC_PUBLIC_KEY_2
        assert identity.remote_public_key == RFC_PUBLIC_KEY_2

    @pytest.mark.asyncio
    async def test_key_cache_avoids_refetch(self, envelope):
        """Should reuse the cache across calls."""
        remote = FakeRemoteSigner(return_public_key=False)
        cache = PublicKeyCache()
        cache.set("wallet-123", RFC_PUBLIC_KEY_2)

        await SignerAdapter(remote, cache).sign(remote_identity(public_key=None), envelope)

        assert remote.get_wallet_calls == 0

    @pytest.mark.asyncio
    async def test_fresh_public_key_overrides_stale_cache(self, envelope, remote_signer):
        """Should replace a stale cached key with the one returned by raw-sign."""
        adapter = SignerAdapter(remote_signer)
        identity = remote_identity(public_key=RFC_PUBLIC_KEY_1)

        signed = await adapter.sign(identity, envelope)

        assert signed.public_key == RFC_PUBLIC_KEY_2
        assert identity.remote_public_key == RFC_PUBLIC_KEY_2
        assert identity.address == RFC_ADDRESS_2
        assert adapter.key_cache.get("wallet-123") == RFC_PUBLIC_KEY_2
        assert decode_authenticator(signed.authenticator_bytes).verify(envelope.signing_message())

    @pytest.mark.asyncio
    async def test_key_for_another_sender_is_rejected(self, mock_ledger, remote_signer):
        """Should refuse an envelope built for the address of a stale key."""
        envelope = await TransactionBuilder(mock_ledger).build(RFC_ADDRESS_1, PAYLOAD, fee_payer=True)
        adapter = SignerAdapter(remote_signer)
        identity = remote_identity(public_key=RFC_PUBLIC_KEY_1)
        identity.address = RFC_ADDRESS_1

        with pytest.raises(SigningError) as exc_info:
            await adapter.sign(identity, envelope)

        assert exc_info.value.details == {"sender": RFC_ADDRESS_1, "signing_address": RFC_ADDRESS_2}
        # Identity and cache already point at the signing account for the rebuild
        assert identity.address == RFC_ADDRESS_2
        assert adapter.key_cache.get("wallet-123") == RFC_PUBLIC_KEY_2

    @pytest.mark.asyncio
    async def test_missing_public_key_is_fatal(self, envelope):
        """Should raise MissingPublicKeyError and never use a local key."""
        remote = FakeRemoteSigner(expose_public_key=False, return_public_key=False)
        identity = remote_identity(public_key=None)
        # Local key material present on the identity must not be used
        identity.local_private_key = RFC_PRIVATE_KEY_1

        with pytest.raises(MissingPublicKeyError):
            await SignerAdapter(remote).sign(identity, envelope)

        assert identity.source == WalletSource.REMOTE
        assert identity.remote_public_key is None

    @pytest.mark.asyncio
    async def test_signature_not_matching_key(self, envelope):
        """Should reject a signature that does not verify against the key."""
        remote = FakeRemoteSigner(private_key_hex=RFC_PRIVATE_KEY_1, return_public_key=False)

        with pytest.raises(SigningError):
            await SignerAdapter(remote).sign(remote_identity(), envelope)

    @pytest.mark.asyncio
    async def test_no_remote_signer_configured(self, envelope):
        """Should raise ConfigurationError without a remote signer."""
        with pytest.raises(ConfigurationError):
            await SignerAdapter().sign(remote_identity(), envelope)


class TestNoSource:
    """Tests for identities without a source."""

    @pytest.mark.asyncio
    async def test_none_source_is_fatal(self, envelope):
        """Should raise NoWalletSourceError."""
        identity = WalletIdentity(address=RFC_ADDRESS_1, source=WalletSource.NONE)
        with pytest.raises(NoWalletSourceError):
            await SignerAdapter().sign(identity, envelope)

    @pytest.mark.asyncio
    async def test_missing_identity_is_fatal(self, envelope):
        """Should raise NoWalletSourceError for None."""
        with pytest.raises(NoWalletSourceError):
            await SignerAdapter().sign(None, envelope)


def test_fake_signer_uses_rfc_key():
    """Should sign with the RFC 8032 test 2 key."""
    assert FakeRemoteSigner().public_key == RFC_PUBLIC_KEY_2
    assert load_private_key(RFC_PRIVATE_KEY_1).public_key().key.encode().hex() == RFC_PUBLIC_KEY_1[2:]

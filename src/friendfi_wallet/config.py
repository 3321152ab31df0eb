"""Configuration for the wallet and gas relay layer."""
from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

# Movement testnet defaults
DEFAULT_LEDGER_URL = "https://testnet.movementnetwork.xyz/v1"
DEFAULT_INDEXER_URL = "https://indexer.testnet.movementnetwork.xyz/v1/graphql"
DEFAULT_RELAY_URL = "https://api.us1.shinami.com/movement/gas/v1"
DEFAULT_PRIVY_API_URL = "https://api.privy.io"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class WalletSettings(BaseSettings):
    """Wallet settings with environment variable support (FRIENDFI_*)."""

    model_config = SettingsConfigDict(
        env_prefix="FRIENDFI_",
        env_file=".env",
        extra="ignore",
    )

    # Target ledger
    network: str = "testnet"
    ledger_url: str = DEFAULT_LEDGER_URL
    indexer_url: str = DEFAULT_INDEXER_URL
    ledger_timeout_seconds: float = 30.0

    # Gas relay
    relay_url: str = DEFAULT_RELAY_URL
    relay_api_key: Optional[str] = None
    relay_timeout_seconds: float = Field(default=10.0, gt=0)
    relay_max_retries: int = Field(default=2, ge=0)
    relay_base_delay: float = Field(default=0.5, ge=0)

    # Transaction building
    build_max_attempts: int = Field(default=5, ge=1)
    build_retry_delay: float = Field(default=2.0, ge=0)
    max_gas_amount: int = 200_000
    expiration_seconds: int = 20

    # Pause before the self-funded fallback so the sequence number settles
    fallback_delay: float = 2.0

    # Confirmation
    confirmation_timeout: float = Field(default=20.0, gt=0)
    confirmation_poll_interval: float = Field(default=1.0, gt=0)

    # Remote signer (Privy)
    privy_api_url: str = DEFAULT_PRIVY_API_URL
    privy_app_id: Optional[str] = None
    privy_app_secret: Optional[str] = None

    # Local wallet key derivation
    local_wallet_salt: str = "friendfi-move-salt"
    local_wallet_iterations: int = 100_000

    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {v!r}")
        return level

    def require_relay(self) -> None:
        """Fail fast when the relay cannot be used at all."""
        if not self.relay_api_key:
            raise ConfigurationError(
                "Gas relay API key is not configured (FRIENDFI_RELAY_API_KEY)",
                setting="relay_api_key",
            )
        if not self.relay_url:
            raise ConfigurationError(
                "Gas relay endpoint is not configured (FRIENDFI_RELAY_URL)",
                setting="relay_url",
            )

    def require_remote_signer(self) -> None:
        if not self.privy_app_id or not self.privy_app_secret:
            raise ConfigurationError(
                "Remote signer credentials are not configured "
                "(FRIENDFI_PRIVY_APP_ID / FRIENDFI_PRIVY_APP_SECRET)",
                setting="privy_app_id",
            )


# Global settings instance
_settings: Optional[WalletSettings] = None


def get_settings() -> WalletSettings:
    """Get the global settings, loading from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = WalletSettings()
    return _settings


def set_settings(settings: Optional[WalletSettings]) -> None:
    """Replace the global settings (None resets to lazy loading)."""
    global _settings
    _settings = settings

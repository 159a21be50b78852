"""Configuration architecture using pydantic-settings for typed environment loading."""

from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class RelayConfig(BaseSettings):
    """Dedicated relay connection configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    connect_timeout_seconds: float = 15.0
    publish_ack_timeout_seconds: float = 5.0
    heartbeat_seconds: float = 30.0


class WalletConnectConfig(BaseSettings):
    """Wallet Connect RPC configuration.

    The request timeout is the deadline for a single RPC round-trip.
    Earlier deployments used 30s; 10s is the current default.
    """

    model_config = SettingsConfigDict(
        env_prefix="NWC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    request_timeout_seconds: float = 10.0
    balance_retries: int = 3
    retry_backoff_seconds: float = 0.5
    default_invoice_description: str = "zap.cooking payment"


class LnurlConfig(BaseSettings):
    """Lightning address (LNURL-pay) resolution configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LNURL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    timeout_seconds: float = 15.0


class StorageConfig(BaseSettings):
    """Wallet registry and payment log storage locations."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    db_path: Path = Path("data/wallets.db")
    payment_log_dir: Path = Path("data/payments")


class EmbeddedConfig(BaseSettings):
    """Embedded self-custodial node configuration.

    The API key is optional here; the embedded backend refuses to start
    without one.
    """

    model_config = SettingsConfigDict(
        env_prefix="EMBEDDED_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: SecretStr = SecretStr("")
    network: str = "mainnet"
    storage_dir: Path = Path("data/embedded")


class Settings:
    """Root settings aggregating all configuration sections."""

    def __init__(self) -> None:
        self.relay = RelayConfig()
        self.nwc = WalletConnectConfig()
        self.lnurl = LnurlConfig()
        self.storage = StorageConfig()
        self.embedded = EmbeddedConfig()


# Global settings instance - lazily loaded
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

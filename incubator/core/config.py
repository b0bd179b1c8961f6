"""
Configuration management using Pydantic Settings.
Supports multiple environments: development, staging, production.
"""

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from solana.rpc.commitment import Commitment


class Settings(BaseSettings):
    """Application settings with environment-based configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="INCUBATOR_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Incubator Backend"
    app_version: str = "0.1.0"
    environment: str = "development"

    # Solana RPC
    rpc_endpoints: List[str] = Field(
        default=[
            "https://api.mainnet-beta.solana.com",
            "https://rpc.ankr.com/solana",
        ]
    )
    wss_endpoint: str = "wss://api.mainnet-beta.solana.com"
    solana_commitment: str = "confirmed"
    rpc_timeout: float = 30.0  # seconds

    # Campaign
    token_mint: str = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
    token_symbol: str = "USDT"
    token_decimals: int = 6
    incubator_wallet: str = "H8oTGbCNLRXu844GBRXCAfWTxt6Sa9vB9gut9bLrPdWv"
    max_deposit_amount: int = 100_000

    # Caching
    balance_cache_ttl: float = 30.0  # seconds
    leaderboard_cache_ttl: float = 300.0  # seconds

    # Retry and rate limiting
    max_retries: int = 3
    retry_base_delay: float = 1.0  # seconds, doubled per attempt
    request_interval: float = 15.0  # seconds between dispatched requests
    probe_timeout: float = 5.0  # seconds
    min_endpoint_switch_interval: float = 5.0  # seconds

    # Leaderboard scan
    leaderboard_signature_limit: int = 1000
    leaderboard_batch_size: int = 10
    leaderboard_batch_delay: float = 0.5  # seconds
    transaction_fetch_retries: int = 3
    transaction_fetch_base_delay: float = 1.0  # seconds, doubled per attempt
    leaderboard_default_limit: int = 3

    # Consumer polling
    balance_poll_interval: float = 15.0
    leaderboard_poll_interval: float = 30.0
    leaderboard_poll_retries: int = 3
    leaderboard_poll_retry_delay: float = 2.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # json or console
    log_file: Optional[str] = None

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("solana_commitment")
    @classmethod
    def validate_commitment(cls, v: str) -> str:
        allowed = ["processed", "confirmed", "finalized"]
        if v not in allowed:
            raise ValueError(f"Commitment must be one of: {allowed}")
        return v

    @field_validator("rpc_endpoints")
    @classmethod
    def validate_rpc_endpoints(cls, v: List[str]) -> List[str]:
        endpoints = [url.strip() for url in v if url.strip()]
        if not endpoints:
            raise ValueError("At least one RPC endpoint must be configured")
        return endpoints

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Global settings instance
settings = Settings()


class SolanaConfig:
    """Solana-specific configuration helpers."""

    @staticmethod
    def get_commitment(config: Optional[Settings] = None) -> Commitment:
        """Commitment level used for every query and submission."""
        return Commitment((config or settings).solana_commitment)

    @staticmethod
    def get_rpc_config(config: Optional[Settings] = None) -> dict:
        """Get Solana RPC client configuration."""
        config = config or settings
        return {
            "commitment": Commitment(config.solana_commitment),
            "timeout": config.rpc_timeout,
        }

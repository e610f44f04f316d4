"""Application configuration.

Loads settings from environment variables (and an optional ``.env``
file) with defaults suitable for local development.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings

from storebridge.domain.value_objects import SettlementRail


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Storage
    storage_backend: str = Field(
        default="database",
        description="'database' for PostgreSQL, 'memory' for a process-local store",
    )
    database_url: str = "postgresql+asyncpg://storebridge:storebridge_dev_password@db:5432/storebridge"

    # Settlement rail
    settlement_network: str = "movement"
    settlement_asset: str = "0x1::aptos_coin::AptosCoin"
    settlement_currency: str = "MOVE"
    settlement_decimals: int = 8
    settlement_rate: str = Field(
        default="1",
        description="Settlement currency units per 1 USD (fixed, not an oracle)",
    )
    chain_rpc_url: str = "https://mainnet.movementnetwork.xyz/v1"
    transfer_function: str = "0x1::aptos_account::transfer"

    # Facilitator
    facilitator_url: str = "https://facilitator.stableyard.fi"
    facilitator_timeout_seconds: float = 30.0

    # Order intents
    payment_timeout_seconds: int = 600
    order_intent_ttl_minutes: int = 30
    finalize_claim_timeout_seconds: int = 120
    expiry_sweep_interval_seconds: float = Field(
        default=0,
        description="Run the background expiry sweep every N seconds; 0 disables it",
    )

    # Fulfillment
    fulfillment_enabled: bool = True
    shopify_api_version: str = "2024-10"

    # Store registration
    verify_store_credentials: bool = True

    # MCP
    sse_ping_interval_seconds: float = 30.0
    backend_url: str = Field(
        default="http://localhost:4402",
        description="Backend base URL used by the stdio MCP bridge",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 4402

    # Logging
    log_level: str = "INFO"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def settlement_rail(self) -> SettlementRail:
        """The settlement rail described by these settings."""
        return SettlementRail(
            network=self.settlement_network,
            asset=self.settlement_asset,
            currency=self.settlement_currency,
            decimals=self.settlement_decimals,
            rate=self.settlement_rate,
        )


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings, loaded on first use."""
    return Settings()

"""Application settings and configuration.

This module defines all configuration options for the SheetChain RPC node and
bridge relayer. Settings are loaded from environment variables with sensible
defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from sheetchain.core.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    Field names are accepted as well as the environment aliases, which keeps
    test construction short.
    """

    # Application metadata
    app_name: str = Field(default="SheetChain RPC Node", alias="APP_NAME")
    app_version: str = Field(default="1.0.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Network identity
    chain_id: int = Field(default=12345, alias="CHAIN_ID")
    network_name: str = Field(default="SheetChain", alias="NETWORK_NAME")
    client_version: str = Field(default="SheetChain/1.0.0", alias="CLIENT_VERSION")
    rpc_host: str = Field(default="0.0.0.0", alias="HOST")
    rpc_port: int = Field(default=8545, alias="PORT")

    # Database configuration (sheet_rows backend and bridge_events queue)
    database_url: str = Field(default="sqlite:///./sheetchain.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    auto_create_tables: bool = Field(default=True, alias="AUTO_CREATE_TABLES")

    # Tabular store backing the ledger
    store_backend: Literal["sql", "google", "memory"] = Field(
        default="sql", alias="STORE_BACKEND"
    )
    google_sheet_id: str | None = Field(default=None, alias="GOOGLE_SHEET_ID")
    google_application_credentials: str | None = Field(
        default=None, alias="GOOGLE_APPLICATION_CREDENTIALS"
    )
    google_service_account_email: str | None = Field(
        default=None, alias="GOOGLE_SERVICE_ACCOUNT_EMAIL"
    )
    google_private_key: str | None = Field(default=None, alias="GOOGLE_PRIVATE_KEY")
    google_http_timeout_seconds: float = Field(
        default=15.0, alias="GOOGLE_HTTP_TIMEOUT_SECONDS"
    )

    # Ledger policy
    strict_nonces: bool = Field(default=False, alias="STRICT_NONCES")

    # Simulated contracts
    airdrop_contract_address: str = Field(
        default="0x0000000000000000000000000000000000000001",
        alias="AIRDROP_CONTRACT_ADDRESS",
    )
    airdrop_owner_address: str = Field(
        default="0x0000000000000000000000000000000000000000",
        alias="AIRDROP_OWNER_ADDRESS",
    )
    claim_amount_wei: int = Field(default=10**16, alias="CLAIM_AMOUNT_WEI")
    max_claimants: int = Field(default=1000, alias="MAX_CLAIMANTS")
    bridge_contract_address: str = Field(
        default="0x0000000000000000000000000000000000000002",
        alias="BRIDGE_CONTRACT_ADDRESS",
    )

    # Relayer: polling and settlement
    bridge_poll_interval_ms: int = Field(default=10_000, alias="BRIDGE_POLL_INTERVAL_MS")
    settlement_interval_seconds: float = Field(
        default=5.0, alias="SETTLEMENT_INTERVAL_SECONDS"
    )
    settlement_batch_size: int = Field(default=50, alias="SETTLEMENT_BATCH_SIZE")

    # Relayer: supervisor backoff
    supervisor_base_delay_seconds: float = Field(
        default=1.0, alias="SUPERVISOR_BASE_DELAY_SECONDS"
    )
    supervisor_max_delay_seconds: float = Field(
        default=60.0, alias="SUPERVISOR_MAX_DELAY_SECONDS"
    )
    supervisor_reset_after_seconds: float = Field(
        default=300.0, alias="SUPERVISOR_RESET_AFTER_SECONDS"
    )

    # Solana lock program
    solana_enabled: bool = Field(default=False, alias="SOLANA_ENABLED")
    solana_rpc_url: str = Field(
        default="https://api.devnet.solana.com", alias="SOLANA_RPC_URL"
    )
    solana_lock_program_id: str | None = Field(default=None, alias="SOLANA_LOCK_PROGRAM_ID")
    solana_token_mint: str | None = Field(default=None, alias="SOLANA_TOKEN_MINT")
    solana_signer_url: str | None = Field(default=None, alias="SOLANA_SIGNER_URL")
    solana_poll_interval_seconds: float = Field(
        default=5.0, alias="SOLANA_POLL_INTERVAL_SECONDS"
    )
    solana_http_timeout_seconds: float = Field(
        default=20.0, alias="SOLANA_HTTP_TIMEOUT_SECONDS"
    )

    # BSC token lock contract
    bsc_enabled: bool = Field(default=False, alias="BSC_ENABLED")
    bsc_http_url: str = Field(
        default="https://data-seed-prebsc-1-s1.binance.org:8545", alias="BSC_HTTP_URL"
    )
    bsc_chain_id: int = Field(default=97, alias="BSC_CHAIN_ID")
    bsc_token_lock_address: str | None = Field(default=None, alias="BSC_TOKEN_LOCK_ADDRESS")
    bsc_private_key: str | None = Field(default=None, alias="BSC_PRIVATE_KEY")
    bsc_start_block: int | None = Field(default=None, alias="BSC_START_BLOCK")
    bsc_poll_interval_seconds: float = Field(default=5.0, alias="BSC_POLL_INTERVAL_SECONDS")

    # CORS configuration for wallet front-ends
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def bridge_poll_interval_seconds(self) -> float:
        """Bridge tab polling interval converted from milliseconds."""
        return max(0.1, self.bridge_poll_interval_ms / 1000)

    def validate_store(self) -> None:
        """Raise ConfigurationError when the selected store backend is incomplete."""
        if self.store_backend != "google":
            return
        if not self.google_sheet_id:
            raise ConfigurationError("GOOGLE_SHEET_ID environment variable is required")
        has_keyfile = bool(self.google_application_credentials)
        has_inline = bool(self.google_service_account_email and self.google_private_key)
        if not (has_keyfile or has_inline):
            raise ConfigurationError(
                "Either GOOGLE_APPLICATION_CREDENTIALS or "
                "GOOGLE_SERVICE_ACCOUNT_EMAIL + GOOGLE_PRIVATE_KEY must be set"
            )

    def validate_relayer(self) -> None:
        """Raise ConfigurationError when an enabled relayer source is incomplete."""
        self.validate_store()
        if self.solana_enabled:
            missing = [
                name
                for name, value in (
                    ("SOLANA_LOCK_PROGRAM_ID", self.solana_lock_program_id),
                    ("SOLANA_TOKEN_MINT", self.solana_token_mint),
                    ("SOLANA_SIGNER_URL", self.solana_signer_url),
                )
                if not value
            ]
            if missing:
                raise ConfigurationError(f"Solana bridge enabled but {', '.join(missing)} not set")
        if self.bsc_enabled:
            if not self.bsc_token_lock_address:
                raise ConfigurationError("BSC bridge enabled but BSC_TOKEN_LOCK_ADDRESS not set")
            if not self.bsc_private_key:
                raise ConfigurationError("BSC bridge enabled but BSC_PRIVATE_KEY not set")


settings = Settings()

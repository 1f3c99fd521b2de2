"""LeaseGate configuration management."""

from enum import Enum
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """LeaseGate configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="LEASEGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # General
    env: Environment = Environment.DEVELOPMENT
    log_level: str = "INFO"
    debug: bool = False

    # Soroban ledger
    rpc_url: str = Field(
        default="https://soroban-testnet.stellar.org",
        description="Soroban RPC endpoint",
    )
    network_passphrase: str = "Test SDF Network ; September 2015"
    escrow_contract_id: str = ""
    order_book_contract_id: str = ""
    provider_registry_contract_id: str = ""
    signer_secret_key: Optional[str] = Field(
        default=None, description="Secret seed of the orchestrator's signing account"
    )
    base_fee: int = Field(default=100, description="Base fee in stroops")
    tx_timeout_seconds: int = Field(default=30, description="Transaction validity window")
    tx_poll_interval_seconds: float = Field(
        default=1.0, description="Delay between transaction status polls"
    )
    tx_poll_max_attempts: int = Field(
        default=30, description="Status polls before an outcome is indeterminate"
    )

    # Network timing
    block_time_seconds: int = Field(default=5, description="Ledger close time estimate")

    # Container runtime
    docker_base_url: str = "unix:///var/run/docker.sock"
    docker_network: Optional[str] = None
    docker_stop_timeout_seconds: int = Field(default=10, description="Graceful stop timeout")

    # Monitoring
    health_check_interval_seconds: float = Field(
        default=60.0, description="Health sweep cadence"
    )
    health_check_jitter: float = Field(
        default=0.1, description="Fractional +/- jitter applied to the sweep interval"
    )
    failure_threshold: int = Field(
        default=3, description="Consecutive unhealthy checks before remediation"
    )
    runtime_call_timeout_seconds: float = Field(
        default=30.0, description="Per-call timeout on runtime calls during health checks"
    )
    health_log_retention: int = Field(default=100, description="Health events kept per deployment")
    log_tail_lines: int = Field(default=100, description="Container log lines returned")

    # Escrow
    penalty_token: str = Field(
        default="", description="Token contract used when locking provider penalties"
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Validators
    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level name."""
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("rpc_url")
    @classmethod
    def validate_rpc_url(cls, v: str) -> str:
        """Validate RPC URL is HTTP(S)."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"rpc_url must start with http:// or https://, got {v}")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port number range."""
        if not 1 <= v <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {v}")
        return v

    @field_validator("failure_threshold", "tx_poll_max_attempts", "health_log_retention")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v


settings = Settings()

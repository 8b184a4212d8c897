import os
from typing import Literal

from pydantic import HttpUrl, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseAppSettings(BaseSettings):
    """
    Base configuration for UnionVote.
    Loads from .env and .env.{UNIONVOTE_ENV} files.
    """

    _env = os.getenv("UNIONVOTE_ENV", "development").lower()
    model_config = SettingsConfigDict(
        env_file=(".env", f".env.{_env}"), env_file_encoding="utf-8", extra="ignore"
    )

    # Core Environment
    unionvote_env: Literal["development", "testing", "staging", "production"] = (
        "development"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["pretty", "json"] = "pretty"

    # Ledger (None means the in-memory ledger is used)
    rpc_url: HttpUrl | None = None
    contract_address: str | None = None
    chain_id: int = 11155111
    signer_private_key: str | None = None
    receipt_timeout_secs: float = 120.0

    # Local co-processor on an RPC ledger (dev chains only)
    allow_local_coprocessor: bool = False

    # Optional cross-process reveal lock
    redis_url: RedisDsn | None = None

    # Orchestration
    reveal_timeout_secs: float = 120.0
    status_success_secs: float = 2.0
    status_error_secs: float = 3.0

    @field_validator(
        "rpc_url", "redis_url", "contract_address", "signer_private_key", mode="before"
    )
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        if v == "":
            return None
        return v

    @property
    def is_production(self) -> bool:
        return self.unionvote_env == "production"

    @property
    def is_staging(self) -> bool:
        return self.unionvote_env == "staging"

    @property
    def is_testing(self) -> bool:
        return self.unionvote_env == "testing"

    @property
    def is_in_memory(self) -> bool:
        """Returns True if the application should use the in-memory ledger."""
        return self.rpc_url is None


class DevelopmentSettings(BaseAppSettings):
    """Configuration for development environment."""

    unionvote_env: Literal["development"] = "development"  # type: ignore
    log_format: Literal["pretty"] = "pretty"  # type: ignore


class TestingSettings(BaseAppSettings):
    """Configuration for testing environment."""

    unionvote_env: Literal["testing"] = "testing"  # type: ignore
    log_format: Literal["pretty"] = "pretty"  # type: ignore
    reveal_timeout_secs: float = 5.0


class StagingSettings(BaseAppSettings):
    """Configuration for staging environment. Mirrors production requirements."""

    unionvote_env: Literal["staging"] = "staging"  # type: ignore
    log_format: Literal["pretty"] = "pretty"  # type: ignore

    # Enforce required infrastructure
    rpc_url: HttpUrl  # type: ignore
    contract_address: str  # type: ignore
    allow_local_coprocessor: Literal[False] = False  # type: ignore


class ProductionSettings(BaseAppSettings):
    """Configuration for production environment. Enforces strict requirements."""

    unionvote_env: Literal["production"] = "production"  # type: ignore
    log_format: Literal["json"] = "json"  # type: ignore

    rpc_url: HttpUrl  # type: ignore
    contract_address: str  # type: ignore
    allow_local_coprocessor: Literal[False] = False  # type: ignore

    @field_validator("contract_address")
    @classmethod
    def require_checksum_shape(cls, v: str) -> str:
        if not (v.startswith("0x") and len(v) == 42):
            raise ValueError("CONTRACT_ADDRESS must be a 0x-prefixed 20 byte address")
        return v


def get_settings() -> BaseAppSettings:
    """Factory to return the correct settings object based on UNIONVOTE_ENV."""
    env = os.getenv("UNIONVOTE_ENV", "development").lower()

    if env == "production":
        return ProductionSettings()
    elif env == "staging":
        return StagingSettings()
    elif env == "testing":
        return TestingSettings()
    else:
        return DevelopmentSettings()


settings = get_settings()

"""Configuration management for appdeploy."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from appdeploy.core.exceptions import ConfigurationError


class SyncMode(str, Enum):
    """Policy governing which installed packages a run removes."""

    NONE = "None"
    ADD = "Add"
    CLEAN = "Clean"
    DEVELOPMENT = "Development"
    FORCE_SYNC = "ForceSync"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value.lower() == lowered:
                    return member
        return None


class RunConfig(BaseModel):
    """Typed configuration for a single deployment run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    sync_mode: SyncMode = Field(SyncMode.ADD, description="Sync policy")
    dry_run: bool = Field(False, description="Report intended actions without mutating the environment")
    candidate_paths: List[str] = Field(..., min_length=1, description="Package files in input order")

    @field_validator("sync_mode", mode="before")
    @classmethod
    def parse_sync_mode(cls, v):
        """Accept sync mode names case-insensitively."""
        if isinstance(v, str):
            return SyncMode(v)
        return v

    @field_validator("candidate_paths")
    @classmethod
    def validate_candidate_paths(cls, v: List[str]) -> List[str]:
        for path in v:
            if not path or not path.strip():
                raise ValueError("Candidate paths cannot be empty or whitespace-only")
        return v

    @classmethod
    def create(cls, **values) -> "RunConfig":
        """Build a RunConfig, raising ConfigurationError on invalid values."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid run configuration: {e}")


class Settings(BaseSettings):
    """Process-wide settings read from APPDEPLOY_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="APPDEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Target environment
    environment_url: Optional[str] = Field(None, description="Package administration endpoint")
    api_token: Optional[str] = Field(None, description="Bearer token for the environment")
    request_timeout_seconds: float = Field(30.0, gt=0, description="Per-request timeout")
    max_retries: int = Field(3, ge=1, description="Attempts per environment call")
    backoff_base: float = Field(0.3, ge=0, description="Base delay for exponential backoff")

    # Run defaults
    sync_mode: SyncMode = Field(SyncMode.ADD)
    dry_run: bool = Field(False)

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("json")

    @field_validator("sync_mode", mode="before")
    @classmethod
    def parse_sync_mode(cls, v):
        if isinstance(v, str):
            return SyncMode(v)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        if v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in {"json", "console"}:
            raise ValueError(f"log_format must be 'json' or 'console', got: {v}")
        return v


def load_settings(**overrides) -> Settings:
    """Load settings from the environment, raising ConfigurationError when invalid."""
    try:
        return Settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}")


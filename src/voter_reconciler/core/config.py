"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

USER_MODIFIED_STRATEGIES = ("provenance", "last_writer")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        description="PostgreSQL async connection string",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not re.match(r"^[a-z_][a-z0-9_]{0,62}$", v):
            msg = "Invalid database_schema: must match ^[a-z_][a-z0-9_]{0,62}$"
            raise ValueError(msg)
        return v

    # Import
    import_batch_size: int = Field(
        default=2000,
        description="Spreadsheet rows per chunk (one transaction per chunk)",
        gt=0,
    )
    import_actor: str = Field(
        default="system",
        min_length=1,
        description="Writer recorded in last_updated_by for rows written by the import pipeline",
    )
    system_id_hash_length: int = Field(
        default=8,
        description="Number of hash hex characters embedded in the VV- system identifier",
        ge=6,
        le=64,
    )
    user_modified_strategy: str = Field(
        default="provenance",
        description="How to decide whether a field was hand-edited: provenance or last_writer",
    )
    reclaim_every_chunks: int = Field(
        default=5,
        description="Run the resource-reclamation checkpoint after every N chunks",
        gt=0,
    )

    @field_validator("user_modified_strategy")
    @classmethod
    def validate_user_modified_strategy(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in USER_MODIFIED_STRATEGIES:
            msg = f"Invalid user_modified_strategy: must be one of {', '.join(USER_MODIFIED_STRATEGIES)}"
            raise ValueError(msg)
        return v

    # Rollback
    rollback_retention_days: int = Field(
        default=30,
        description="Days to keep rollback entries before they may be purged",
        gt=0,
    )
    rollback_batch_size: int = Field(
        default=500,
        description="Rollback entries reversed per commit",
        gt=0,
    )

    # Progress
    progress_queue_size: int = Field(
        default=100,
        description="Maximum buffered progress events per subscriber",
        gt=0,
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]

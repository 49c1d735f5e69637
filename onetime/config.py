"""Configuration from environment (no hardcoded secrets)."""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings from env (ONETIME_*)."""

    model_config = SettingsConfigDict(env_prefix="ONETIME_", extra="ignore")

    # Storage provider: "sql" or "dynamodb"; anything else leaves the service unavailable
    provider: str = "sql"
    database_url: str = "sqlite+aiosqlite:///./onetime.db"

    # DynamoDB
    dynamodb_files_table: str = "Onetime.Files"
    dynamodb_links_table: str = "Onetime.Links"
    aws_region: str = "us-east-1"
    dynamodb_endpoint_url: Optional[str] = None

    # Per-call deadline for every storage operation
    storage_timeout_seconds: float = 10.0
    # Total attempts when a freshly generated token collides
    link_issue_attempts: int = 5

    # API keys: one scope for files, one for links. Empty = scope disabled.
    files_api_key: str = ""
    links_api_key: str = ""
    download_requires_api_key: bool = True

    # Upload limits
    max_file_bytes: int = 100_000
    max_filename_length: int = 80

    # Server
    port: int = 8080

    # Logging (empty log_file = stderr only; level DEBUG|INFO|WARNING|ERROR)
    log_level: str = "INFO"
    log_file: str = ""

    @field_validator("provider")
    @classmethod
    def _normalize_provider(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("storage_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("storage_timeout_seconds must be positive")
        return v

    @field_validator("link_issue_attempts")
    @classmethod
    def _at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("link_issue_attempts must be at least 1")
        return v


def get_settings() -> Settings:
    """Return application settings."""
    return Settings()

"""
Application configuration using pydantic-settings.
"""
import logging
from pathlib import Path
from typing import Optional

from pydantic import field_validator, model_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_FILENAME = ".tmp/data.db"
SUPPORTED_DATABASE_CLIENTS = ("sqlite", "postgres")

MIB = 1024 * 1024


class Settings(BaseSettings):
    """Relocator settings."""

    environment: str = "development"

    # Database
    database_client: str = "sqlite"
    database_filename: str = DEFAULT_SQLITE_FILENAME
    database_url: Optional[str] = None
    database_private_url: Optional[str] = None
    asset_table: str = "files"

    # Provider tags as stored in the asset table
    source_provider: str = "cloudinary"
    destination_provider: str = "aws-s3"

    # Destination object store (S3-compatible)
    aws_access_key_id: Optional[str] = None
    aws_access_secret: Optional[str] = None
    aws_region: str = "auto"
    aws_bucket: Optional[str] = None
    aws_endpoint: Optional[str] = None
    r2_public_url: Optional[str] = None  # Custom domain, e.g. https://cdn.example.com

    # Migration
    migration_concurrency: int = 3
    migration_state_file: str = "migration-state.json"
    verify_existing_size: bool = False

    # Transfer limits and timeouts (seconds)
    source_probe_timeout: float = 10.0
    download_timeout: float = 60.0
    download_retries: int = 3
    download_retry_delay: float = 1.0
    max_asset_size_mb: int = 100
    multipart_threshold_mb: int = 5
    multipart_part_size_mb: int = 5
    multipart_concurrency: int = 4

    # Backups
    backup_dir: str = "backups"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def effective_database_url(self) -> str:
        """Get the SQLAlchemy URL for the configured client."""
        if self.database_client == "postgres":
            url = self.database_private_url or self.database_url
            if not url:
                raise ValueError("DATABASE_URL must be set when DATABASE_CLIENT=postgres")
            # Bare postgres:// is not a registered SQLAlchemy dialect name
            if url.startswith("postgres://"):
                url = "postgresql://" + url[len("postgres://"):]
            return url
        return f"sqlite:///{self.sqlite_path}"

    @property
    def postgres_dsn(self) -> Optional[str]:
        """Connection string for pg_dump/psql (libpq format)."""
        return self.database_private_url or self.database_url

    @property
    def sqlite_path(self) -> Path:
        """Resolve the embedded database file against the working directory."""
        return Path(self.database_filename).expanduser().resolve()

    @property
    def max_asset_size_bytes(self) -> int:
        return self.max_asset_size_mb * MIB

    @property
    def multipart_threshold_bytes(self) -> int:
        return self.multipart_threshold_mb * MIB

    @property
    def multipart_part_size_bytes(self) -> int:
        return self.multipart_part_size_mb * MIB

    @field_validator('database_client', mode='before')
    @classmethod
    def validate_database_client(cls, v) -> str:
        """Normalise DATABASE_CLIENT to one of the supported backends."""
        if v is None or not str(v).strip():
            return "sqlite"
        client = str(v).strip().lower()
        if client == "postgresql":
            client = "postgres"
        if client not in SUPPORTED_DATABASE_CLIENTS:
            raise ValueError(
                f"DATABASE_CLIENT must be either 'sqlite' or 'postgres'. Got: {v}"
            )
        return client

    @field_validator('database_url', 'database_private_url', 'aws_endpoint', mode='before')
    @classmethod
    def strip_optional_strings(cls, v):
        """Treat blank strings from .env files as unset."""
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator('r2_public_url', mode='before')
    @classmethod
    def validate_public_url(cls, v):
        """Strip trailing slash from the custom public domain."""
        if v is None or not str(v).strip():
            return None
        v = str(v).strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(
                "R2_PUBLIC_URL must include a scheme (http:// or https://). "
                f"Got: {v}"
            )
        return v.rstrip("/")

    @field_validator('migration_concurrency')
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Keep the worker pool within sane bounds."""
        if v < 1:
            raise ValueError("MIGRATION_CONCURRENCY must be at least 1")
        if v > 32:
            raise ValueError("MIGRATION_CONCURRENCY cannot exceed 32")
        return v

    @field_validator(
        'download_retries', 'max_asset_size_mb', 'multipart_threshold_mb',
        'multipart_part_size_mb', 'multipart_concurrency',
    )
    @classmethod
    def validate_positive_int(cls, v: int, info: ValidationInfo) -> int:
        if v <= 0:
            raise ValueError(f"{info.field_name.upper()} must be positive")
        return v

    @field_validator('source_probe_timeout', 'download_timeout')
    @classmethod
    def validate_timeout_settings(cls, v: float) -> float:
        """Validate timeout settings are reasonable."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        if v > 3600:  # 1 hour max
            raise ValueError("Timeout cannot exceed 3600 seconds (1 hour)")
        return v

    @field_validator('download_retry_delay')
    @classmethod
    def validate_retry_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("DOWNLOAD_RETRY_DELAY cannot be negative")
        return v

    @model_validator(mode='after')
    def validate_production_settings(self) -> 'Settings':
        """Production runs must be fully configured up front."""
        if self.environment != "production":
            return self

        missing = [
            name.upper()
            for name in ("aws_access_key_id", "aws_access_secret", "aws_bucket", "aws_endpoint")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(
                "Destination storage is not configured for production: "
                f"missing {', '.join(missing)}"
            )
        if self.database_client == "postgres" and not self.postgres_dsn:
            raise ValueError("DATABASE_URL must be set when DATABASE_CLIENT=postgres")
        return self


def load_settings(environment: Optional[str] = None) -> Settings:
    """
    Load settings for an environment.

    Values from ``.env`` are overridden by ``.env.<environment>`` when present.
    """
    if not environment:
        return Settings()

    env_files = (".env", f".env.{environment}")
    logger.debug("Loading settings from %s", ", ".join(env_files))
    return Settings(_env_file=env_files, environment=environment)


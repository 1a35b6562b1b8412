"""
Unit tests for asset_relocator.core.config settings validation.
"""
import pytest
from pydantic import ValidationError

from asset_relocator.core.config import Settings


def make_settings(**kwargs):
    """Create Settings without loading values from .env."""
    return Settings(_env_file=None, **kwargs)


class TestDatabaseClientValidation:
    """DATABASE_CLIENT normalisation and URL resolution."""

    def test_database_client_defaults_to_sqlite(self):
        settings = make_settings()
        assert settings.database_client == "sqlite"
        assert settings.effective_database_url.startswith("sqlite:///")
        assert settings.effective_database_url.endswith("data.db")

    def test_database_client_accepts_postgresql_alias(self):
        settings = make_settings(database_client="PostgreSQL", database_url="postgres://u:p@db/app")
        assert settings.database_client == "postgres"

    def test_database_client_rejects_unknown_backend(self):
        with pytest.raises(ValidationError) as exc_info:
            make_settings(database_client="mysql")
        assert "DATABASE_CLIENT must be either 'sqlite' or 'postgres'" in str(exc_info.value)

    def test_postgres_url_prefers_private_url(self):
        settings = make_settings(
            database_client="postgres",
            database_url="postgresql://public/app",
            database_private_url="postgresql://private/app",
        )
        assert settings.effective_database_url == "postgresql://private/app"
        assert settings.postgres_dsn == "postgresql://private/app"

    def test_postgres_scheme_is_rewritten_for_sqlalchemy(self):
        settings = make_settings(database_client="postgres", database_url="postgres://u:p@db:5432/app")
        assert settings.effective_database_url == "postgresql://u:p@db:5432/app"
        # pg_dump/psql receive the URL untouched
        assert settings.postgres_dsn == "postgres://u:p@db:5432/app"

    def test_postgres_without_url_raises(self):
        settings = make_settings(database_client="postgres", database_url="  ")
        with pytest.raises(ValueError):
            _ = settings.effective_database_url


class TestStorageSettings:
    """Destination storage settings."""

    def test_public_url_trailing_slash_is_stripped(self):
        settings = make_settings(r2_public_url="https://cdn.example.com/")
        assert settings.r2_public_url == "https://cdn.example.com"

    def test_public_url_requires_scheme(self):
        with pytest.raises(ValidationError) as exc_info:
            make_settings(r2_public_url="cdn.example.com")
        assert "R2_PUBLIC_URL must include a scheme" in str(exc_info.value)

    def test_blank_public_url_is_unset(self):
        assert make_settings(r2_public_url="").r2_public_url is None

    def test_production_requires_destination_credentials(self):
        with pytest.raises(ValidationError) as exc_info:
            make_settings(environment="production", aws_bucket="media")
        message = str(exc_info.value)
        assert "AWS_ACCESS_KEY_ID" in message
        assert "AWS_ENDPOINT" in message
        assert "AWS_BUCKET" not in message

    def test_production_with_credentials_succeeds(self):
        settings = make_settings(
            environment="production",
            aws_access_key_id="key",
            aws_access_secret="secret",
            aws_bucket="media",
            aws_endpoint="https://acct.r2.cloudflarestorage.com",
        )
        assert settings.environment == "production"


class TestTransferSettings:
    """Migration and transfer limits."""

    def test_defaults(self):
        settings = make_settings()
        assert settings.migration_concurrency == 3
        assert settings.download_retries == 3
        assert settings.max_asset_size_bytes == 100 * 1024 * 1024
        assert settings.multipart_threshold_bytes == 5 * 1024 * 1024
        assert settings.multipart_part_size_bytes == 5 * 1024 * 1024
        assert settings.multipart_concurrency == 4
        assert settings.verify_existing_size is False

    @pytest.mark.parametrize("value", [0, 33])
    def test_concurrency_bounds(self, value):
        with pytest.raises(ValidationError):
            make_settings(migration_concurrency=value)

    def test_negative_retry_delay_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(download_retry_delay=-1)

    def test_timeout_ceiling(self):
        with pytest.raises(ValidationError) as exc_info:
            make_settings(download_timeout=7200)
        assert "cannot exceed 3600 seconds" in str(exc_info.value)

"""
CLI tests driving the Typer application end to end against a SQLite file.
"""
import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from asset_relocator import __version__
from asset_relocator.cli.cli import app
from asset_relocator.core.database import AssetStore
from asset_relocator.schemas.migration_state import FailedFile, MigrationState

runner = CliRunner()

COMMAND_MODULES = ("backup", "migrate", "restore")


@pytest.fixture
def cli_env(monkeypatch, tmp_path, settings):
    """Point the CLI at tmp_path through environment variables."""
    monkeypatch.chdir(tmp_path)
    env = {
        "DATABASE_CLIENT": "sqlite",
        "DATABASE_FILENAME": str(settings.sqlite_path),
        "BACKUP_DIR": settings.backup_dir,
        "LOG_DIR": settings.log_dir,
        "MIGRATION_STATE_FILE": settings.migration_state_file,
        "AWS_ACCESS_KEY_ID": "test-key",
        "AWS_ACCESS_SECRET": "test-secret",
        "AWS_BUCKET": "media",
        "AWS_ENDPOINT": "https://acct123.r2.cloudflarestorage.com",
        "R2_PUBLIC_URL": "https://cdn.example",
        "DOWNLOAD_RETRY_DELAY": "0",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)

    patches = [
        patch(f"asset_relocator.cli.commands.{module}.setup_cli_logging") for module in COMMAND_MODULES
    ]
    for p in patches:
        p.start()
    yield env
    for p in patches:
        p.stop()


@pytest.fixture
def fake_remotes(object_store, source_client):
    """Replace the destination bucket and source provider with in-memory fakes."""
    with patch(
        "asset_relocator.cli.commands.migrate.ObjectStoreClient.from_settings", return_value=object_store
    ), patch(
        "asset_relocator.cli.commands.migrate.SourceClient.from_settings", return_value=source_client
    ):
        yield


def count(settings, provider):
    store = AssetStore.from_settings(settings)
    try:
        return store.count_by_provider(provider)
    finally:
        store.dispose()


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_invalid_configuration_exits_with_error(cli_env, monkeypatch):
    monkeypatch.setenv("DATABASE_CLIENT", "mysql")

    result = runner.invoke(app, ["migrate"])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


class TestMigrateCommand:

    def test_dry_run_changes_nothing(self, cli_env, fake_remotes, insert_assets, settings, s3_client, tmp_path):
        insert_assets({"id": 1}, {"id": 2})

        result = runner.invoke(app, ["migrate", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "DRY RUN MODE" in result.output
        assert "Dry run complete. 2 files would be migrated" in result.output
        s3_client.put_object.assert_not_called()
        assert count(settings, "cloudinary") == 2
        assert not (tmp_path / "migration-state.json").exists()

    def test_live_run_migrates_and_persists_ledger(self, cli_env, fake_remotes, insert_assets, settings, tmp_path):
        insert_assets({"id": 1}, {"id": 2})

        result = runner.invoke(app, ["migrate", "--concurrency", "2"])

        assert result.exit_code == 0, result.output
        assert "Migration completed successfully" in result.output
        assert count(settings, "aws-s3") == 2
        ledger = json.loads((tmp_path / "migration-state.json").read_text())
        assert ledger["status"] == "completed"
        assert ledger["statistics"]["success"] == 2

    def test_partial_failure_still_exits_zero(
        self, cli_env, fake_remotes, insert_assets, settings, fake_source
    ):
        insert_assets({"id": 1}, {"id": 2})
        fake_source.failing.add("https://res.cloudinary.com/demo/image/upload/hash2.png")

        result = runner.invoke(app, ["migrate"])

        assert result.exit_code == 0, result.output
        assert "completed with 1 errors" in result.output
        assert count(settings, "aws-s3") == 1

    def test_missing_database_is_fatal(self, cli_env, fake_remotes):
        result = runner.invoke(app, ["migrate"])

        assert result.exit_code == 1
        assert "Migration failed" in result.output

    def test_malformed_endpoint_is_fatal(self, cli_env, monkeypatch, asset_db):
        monkeypatch.setenv("AWS_ENDPOINT", "https://s3.amazonaws.com")
        monkeypatch.setenv("R2_PUBLIC_URL", "")

        result = runner.invoke(app, ["migrate"])

        assert result.exit_code == 1
        assert "Migration failed" in result.output


class TestBackupCommands:

    def test_backup_creates_artifacts(self, cli_env, insert_assets, settings):
        insert_assets({"id": 1})

        result = runner.invoke(app, ["backup"])

        assert result.exit_code == 0, result.output
        assert "Backup completed successfully" in result.output
        names = sorted(path.name for path in (settings.sqlite_path.parent / "backups").iterdir())
        assert len(names) == 4
        assert any(name.startswith("data.db.backup-") for name in names)

    def test_backup_without_source_records(self, cli_env, asset_db):
        result = runner.invoke(app, ["backup"])

        assert result.exit_code == 0
        assert "Nothing to backup" in result.output

    def test_backup_without_database_fails(self, cli_env):
        result = runner.invoke(app, ["backup"])

        assert result.exit_code == 1
        assert "Backup failed" in result.output

    def test_backups_lists_sets(self, cli_env, insert_assets):
        insert_assets({"id": 1})
        runner.invoke(app, ["backup"])

        result = runner.invoke(app, ["backups"])

        assert result.exit_code == 0
        assert "Available Backups" in result.output

    def test_backups_when_empty(self, cli_env):
        result = runner.invoke(app, ["backups"])

        assert result.exit_code == 0
        assert "No backups found" in result.output


class TestRestoreCommand:

    @pytest.fixture
    def backed_up(self, cli_env, insert_assets, settings):
        insert_assets({"id": 1}, {"id": 2})
        assert runner.invoke(app, ["backup"]).exit_code == 0
        store = AssetStore.from_settings(settings)
        store.update_file_to_destination(1, "https://cdn.example/hash1.png")
        store.dispose()

    def test_declining_is_a_clean_exit(self, backed_up, settings):
        result = runner.invoke(app, ["restore"], input="n\n")

        assert result.exit_code == 0
        assert "Restore cancelled" in result.output
        assert count(settings, "aws-s3") == 1

    def test_confirmed_restore(self, backed_up, settings):
        result = runner.invoke(app, ["restore"], input="y\n")

        assert result.exit_code == 0, result.output
        assert "Restore completed successfully" in result.output
        assert count(settings, "cloudinary") == 2
        assert "re-run the migration if needed" in " ".join(result.output.split())

    def test_existing_ledger_is_flagged_after_restore(self, backed_up, settings, tmp_path):
        (tmp_path / "migration-state.json").write_text(MigrationState(migration_id="m1").model_dump_json())

        result = runner.invoke(app, ["restore", "--yes"])

        output = " ".join(result.output.split())
        assert result.exit_code == 0, result.output
        assert "predates this restore" in output
        assert "aside before re-running the migration" in output

    def test_yes_flag_skips_prompt(self, backed_up, settings):
        result = runner.invoke(app, ["restore", "--yes"])

        assert result.exit_code == 0, result.output
        assert count(settings, "aws-s3") == 0

    def test_unknown_backup_timestamp(self, backed_up):
        result = runner.invoke(app, ["restore", "--backup", "1999-01-01-00-00-00", "--yes"])

        assert result.exit_code == 1
        assert "Backup not found" in result.output

    def test_no_backups(self, cli_env):
        result = runner.invoke(app, ["restore", "--yes"])

        assert result.exit_code == 1
        assert "No backups found" in result.output


class TestStatusCommand:

    def test_without_ledger(self, cli_env):
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0
        assert "No migration state found" in result.output

    def test_shows_failures(self, cli_env, tmp_path):
        state = MigrationState(failed_files=[FailedFile(id=9, original_url="https://src/9.png", error="boom")])
        state.finalize()
        (tmp_path / "migration-state.json").write_text(state.model_dump_json())

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0, result.output
        assert "Failed Files" in result.output
        assert "boom" in result.output

    def test_corrupted_ledger(self, cli_env, tmp_path):
        (tmp_path / "migration-state.json").write_text("{")

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1

"""
Backup service for pre-migration snapshots and restores.

One backup invocation writes four artifacts into the backup directory, all
tagged with the same timestamp token:

    data.db.backup-<ts> | backup-<ts>.sql   database snapshot
    source-backup-<ts>.json                 metadata export of source records
    migration-mapping-<ts>.csv              id -> url tracking sheet
    backup-report-<ts>.txt                  verification summary
"""
import csv
import re
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from asset_relocator.core.config import Settings
from asset_relocator.core.database import AssetStore
from asset_relocator.core.exceptions import (
    BackupArtifactMissing,
    BackupNotFound,
    RelocatorError,
    RestoreAborted,
)
from asset_relocator.core.logging_config import LogCategory, log_info
from asset_relocator.core.reporting import Reporter
from asset_relocator.core.time_utils import (
    TIMESTAMP_TOKEN_PATTERN,
    parse_timestamp_token,
    timestamp_token,
    utc_isoformat,
)
from asset_relocator.models.enums import DatabaseClient
from asset_relocator.schemas.asset import AssetRecord
from asset_relocator.schemas.backup import BackupExport, BackupInfo, BackupMetadata, BackupSet, ExportedFile

CSV_COLUMNS = [
    "file_id",
    "file_name",
    "hash",
    "original_url",
    "new_url",
    "status",
    "migration_date",
    "error_message",
]
PENDING_STATUS = "pending"
PRE_RESTORE_DIR = "pre-restore"

_TOKEN_RE = re.compile(f"({TIMESTAMP_TOKEN_PATTERN})")

ConfirmCallback = Callable[[str], bool]


class BackupManager:
    """Create, list and restore backup artifact sets."""

    def __init__(
        self,
        settings: Settings,
        *,
        store: Optional[AssetStore] = None,
        reporter: Optional[Reporter] = None,
        store_factory: Callable[[Settings], AssetStore] = AssetStore.from_settings,
    ):
        self.settings = settings
        self.backup_dir = Path(settings.backup_dir)
        self.reporter = reporter or Reporter()
        self._store = store
        self._store_factory = store_factory

    @property
    def store(self) -> AssetStore:
        if self._store is None:
            self._store = self._store_factory(self.settings)
        return self._store

    @property
    def database_client(self) -> str:
        return self.settings.database_client

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def run_backup(self) -> Optional[BackupInfo]:
        """
        Full backup: snapshot, JSON export, CSV mapping, verification, report.

        Returns:
            BackupInfo, or None when there are no source records to protect

        Raises:
            BackupArtifactMissing: If any artifact could not be written or verified
        """
        provider = self.settings.source_provider
        records = self.store.get_source_files()
        self.reporter.info(f"Found {len(records)} {provider} files to backup")

        if not records:
            self.reporter.warning(f"No {provider} files found. Nothing to backup.")
            return None

        if not self.backup_dir.exists():
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            self.reporter.success(f"Created backup directory {self.backup_dir}")

        token = timestamp_token()
        # Existing files with this token belong to an earlier set
        existing = sorted(path.name for path in self.backup_dir.glob(f"*{token}*"))
        if existing:
            raise BackupArtifactMissing(
                f"Backup set {token} already exists ({', '.join(existing)}); retry in a moment"
            )

        try:
            self.reporter.section("Step 1: Database Backup")
            database_backup = self.backup_database(token=token)
            self.reporter.success(f"Database backed up to: {database_backup.name}")

            self.reporter.section("Step 2: JSON Export")
            json_backup = self.export_to_json(records, token=token)
            self.reporter.success(f"JSON backup created: {json_backup.name} ({len(records)} files)")

            self.reporter.section("Step 3: CSV Mapping Table")
            csv_backup = self.export_to_csv(records, token=token)
            self.reporter.success(f"CSV mapping created: {csv_backup.name}")

            self.reporter.section("Step 4: Verification")
            self.verify_artifacts({
                "Database backup": database_backup,
                "JSON backup": json_backup,
                "CSV backup": csv_backup,
            })

            info = BackupInfo(
                timestamp=token,
                database_type=self.database_client,
                database_backup=database_backup,
                json_backup=json_backup,
                csv_backup=csv_backup,
                total_files=len(records),
                total_size_kb=round(sum(record.size or 0 for record in records), 2),
            )

            self.reporter.section("Step 5: Backup Report")
            info.report = self.generate_report(info)
            self.reporter.success(f"Backup report: {info.report.name}")
        except Exception:
            self._discard_artifacts(self._artifact_paths(token).values())
            raise

        log_info(
            "Backup completed",
            category=LogCategory.BACKUP,
            timestamp=token,
            total_files=info.total_files,
        )
        return info

    def backup_database(self, token: Optional[str] = None) -> Path:
        """Snapshot the live database: a file copy for SQLite, pg_dump for PostgreSQL."""
        token = token or timestamp_token()
        self.backup_dir.mkdir(parents=True, exist_ok=True)

        if self.database_client == DatabaseClient.SQLITE.value:
            source = self.settings.sqlite_path
            if not source.exists():
                raise BackupArtifactMissing(f"SQLite database not found at: {source}")
            target = self._artifact_paths(token)["database"]
            try:
                shutil.copy2(source, target)
            except OSError as e:
                raise BackupArtifactMissing(f"SQLite backup failed: {e}") from e
            return target

        target = self._artifact_paths(token)["database"]
        self._pg_dump(target)
        return target

    def export_to_json(self, records: Sequence[AssetRecord], token: Optional[str] = None) -> Path:
        """Write a self-describing JSON snapshot of the given records."""
        token = token or timestamp_token()
        target = self._artifact_paths(token)["json"]

        export = BackupExport(
            backup_metadata=BackupMetadata(
                backup_date=utc_isoformat(),
                database_type=self.database_client,
                source_provider=self.settings.source_provider,
                total_files=len(records),
            ),
            files=[ExportedFile.from_record(record) for record in records],
        )
        self._write_text(target, export.model_dump_json(indent=2, by_alias=True))
        return target

    def export_to_csv(self, records: Sequence[AssetRecord], token: Optional[str] = None) -> Path:
        """Write the id -> original url tracking sheet with empty migration columns."""
        token = token or timestamp_token()
        target = self._artifact_paths(token)["csv"]

        try:
            with open(target, "w", encoding="utf-8", newline="") as f:
                writer = csv.writer(f)
                writer.writerow(CSV_COLUMNS)
                for record in records:
                    writer.writerow([record.id, record.name, record.hash, record.url, "", PENDING_STATUS, "", ""])
        except OSError as e:
            raise BackupArtifactMissing(f"Could not write {target}: {e}") from e
        return target

    def generate_report(self, info: BackupInfo) -> Path:
        """Human-readable summary that checks every artifact is on disk."""
        target = self._artifact_paths(info.timestamp)["report"]
        provider = self.settings.source_provider
        total_size = f"{info.total_size_kb:.2f} KB" if info.total_size_kb is not None else "N/A"

        def exists(path: Path) -> str:
            return "YES" if path.exists() else "NO"

        report = f"""
{provider} to {self.settings.destination_provider} Migration - Backup Report
==========================================

Backup Date: {utc_isoformat()}
Database Type: {info.database_type}

Files Backed Up:
  - Database: {info.database_backup}
  - JSON Export: {info.json_backup}
  - CSV Mapping: {info.csv_backup}

Statistics:
  - Total {provider} Files: {info.total_files}
  - Total File Size: {total_size}

Verification:
  - Database backup exists: {exists(info.database_backup)}
  - JSON backup exists: {exists(info.json_backup)}
  - CSV backup exists: {exists(info.csv_backup)}

Status: {info.status}

Notes:
- Keep these backups until migration is verified successful
- Database backups can be used for full recovery
- JSON backups contain all file metadata and can be used for partial recovery
- CSV is useful for quick lookups and spreadsheet analysis
"""
        self._write_text(target, report.strip() + "\n")
        return target

    def verify_artifacts(self, artifacts: Dict[str, Path]) -> Dict[str, int]:
        """
        Check every artifact exists and report its size.

        Raises:
            BackupArtifactMissing: Listing every artifact that is missing
        """
        sizes: Dict[str, int] = {}
        missing: List[str] = []
        for name, path in artifacts.items():
            if path.is_file():
                sizes[name] = path.stat().st_size
                self.reporter.success(f"{name}: {sizes[name] / 1024:.2f} KB")
            else:
                self.reporter.error(f"{name}: NOT FOUND")
                missing.append(f"{name} ({path})")

        if missing:
            raise BackupArtifactMissing(f"Backup verification failed: {', '.join(missing)}")
        return sizes

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    @staticmethod
    def list_backups(backup_dir: Union[str, Path]) -> List[BackupSet]:
        """Group artifacts by their embedded timestamp token, newest first."""
        backup_dir = Path(backup_dir)
        if not backup_dir.is_dir():
            return []

        groups: Dict[str, BackupSet] = {}
        for path in sorted(backup_dir.iterdir()):
            if not path.is_file():
                continue
            match = _TOKEN_RE.search(path.name)
            if not match:
                continue
            token = match.group(1)
            groups.setdefault(token, BackupSet(timestamp=token)).files.append(path.name)

        return sorted(
            groups.values(),
            key=lambda backup_set: parse_timestamp_token(backup_set.timestamp),
            reverse=True,
        )

    def select_backup(self, timestamp: Optional[str] = None) -> BackupSet:
        """The requested backup set, or the most recent one."""
        backups = self.list_backups(self.backup_dir)
        if not backups:
            raise BackupNotFound(f"No backups found in {self.backup_dir}")

        if timestamp is None:
            return backups[0]

        for backup_set in backups:
            if backup_set.timestamp == timestamp:
                return backup_set
        raise BackupNotFound(f"Backup not found: {timestamp}")

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore(self, timestamp: Optional[str] = None, confirm: Optional[ConfirmCallback] = None) -> Dict[str, int]:
        """
        Restore the database from a backup set and verify the result.

        Args:
            timestamp: Backup set to restore; defaults to the most recent
            confirm: Called with a prompt before the live database is touched

        Returns:
            Record counts per provider tag after the restore

        Raises:
            BackupNotFound: No matching backup set
            BackupArtifactMissing: The set has no database snapshot
            RestoreAborted: The confirmation callback declined
        """
        backup_set = self.select_backup(timestamp)
        artifact_name = backup_set.database_artifact()
        if artifact_name is None:
            raise BackupArtifactMissing(f"Database backup file not found in set {backup_set.timestamp}")

        self.reporter.info(f"Using backup: {backup_set.timestamp}")
        self.reporter.warning("This will overwrite your current database!")
        self.reporter.info(f"Backup file: {artifact_name}")

        if confirm is None or not confirm("Are you sure you want to restore?"):
            raise RestoreAborted("Restore cancelled")

        self.reporter.section("Restoring Database")
        self.restore_database(self.backup_dir / artifact_name)
        self.reporter.success(f"Database restored from: {artifact_name}")

        self.reporter.section("Verification")
        return self.verify_restore()

    def restore_database(self, artifact: Union[str, Path]) -> None:
        """Replace the live database with a snapshot, keeping a pre-restore copy first."""
        artifact = Path(artifact)
        if not artifact.is_file():
            raise BackupArtifactMissing(f"Backup file not found: {artifact}")

        # Pooled connections must not outlive the file or schema they point at
        if self._store is not None:
            self._store.dispose()
            self._store = None

        if self.database_client == DatabaseClient.SQLITE.value:
            db_path = self.settings.sqlite_path
            if db_path.exists():
                safety_copy = db_path.with_name(db_path.name + ".pre-restore")
                shutil.copy2(db_path, safety_copy)
                log_info("Saved pre-restore copy", category=LogCategory.BACKUP, path=str(safety_copy))
            db_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(artifact, db_path)
            return

        safety_dir = self.backup_dir / PRE_RESTORE_DIR
        safety_dir.mkdir(parents=True, exist_ok=True)
        safety_copy = safety_dir / f"pre-restore-{timestamp_token()}.sql"
        self._pg_dump(safety_copy)
        log_info("Saved pre-restore dump", category=LogCategory.BACKUP, path=str(safety_copy))

        self._run_pg_tool(
            ["psql", "--dbname", self._require_dsn(), "--set", "ON_ERROR_STOP=1", "--quiet", "--file", str(artifact)],
            "PostgreSQL restore failed",
            RelocatorError,
        )

    def verify_restore(self) -> Dict[str, int]:
        """Re-count records per provider tag through a fresh connection."""
        store = self._store_factory(self.settings)
        try:
            counts = {
                self.settings.source_provider: store.count_by_provider(self.settings.source_provider),
                self.settings.destination_provider: store.count_by_provider(self.settings.destination_provider),
            }
        finally:
            store.dispose()

        self.reporter.stats("Restore Verification", {f"{tag} files": count for tag, count in counts.items()})
        return counts

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_dsn(self) -> str:
        dsn = self.settings.postgres_dsn
        if not dsn:
            raise BackupArtifactMissing("DATABASE_URL must be set when DATABASE_CLIENT=postgres")
        return dsn

    def _pg_dump(self, target: Path) -> None:
        self._run_pg_tool(
            ["pg_dump", "--dbname", self._require_dsn(), "--clean", "--if-exists", "--no-owner", "--file", str(target)],
            "PostgreSQL backup failed",
            BackupArtifactMissing,
        )

    @staticmethod
    def _run_pg_tool(args: List[str], failure: str, error_cls) -> None:
        try:
            subprocess.run(args, check=True, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise error_cls(f"{failure}: {args[0]} is not installed") from e
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip() or f"exit code {e.returncode}"
            raise error_cls(f"{failure}: {detail}") from e

    @staticmethod
    def _write_text(target: Path, content: str) -> None:
        try:
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            raise BackupArtifactMissing(f"Could not write {target}: {e}") from e

    def _artifact_paths(self, token: str) -> Dict[str, Path]:
        if self.database_client == DatabaseClient.SQLITE.value:
            database = self.backup_dir / f"data.db.backup-{token}"
        else:
            database = self.backup_dir / f"backup-{token}.sql"
        return {
            "database": database,
            "json": self.backup_dir / f"source-backup-{token}.json",
            "csv": self.backup_dir / f"migration-mapping-{token}.csv",
            "report": self.backup_dir / f"backup-report-{token}.txt",
        }

    def _discard_artifacts(self, paths: Iterable[Path]) -> None:
        for path in paths:
            if path.is_file():
                path.unlink()
                log_info("Removed partial backup artifact", category=LogCategory.BACKUP, path=str(path))

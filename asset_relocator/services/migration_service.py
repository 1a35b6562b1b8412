"""
Migration engine: move every source-tagged asset to the destination store.

Per record:
    1. Probe the source URL; a missing object is skipped without touching the database
    2. Derive the content-addressed key (hash + extension)
    3. Probe the destination; an existing object is reused instead of re-uploaded
    4. Download from the source with bounded retries
    5. Upload to the destination
    6. Rewrite the record to point at the destination

Steps 4-6 run inside one database transaction scoped to the record, so the
database never points at bytes that were not confirmed uploaded. Outcomes are
written to the ledger after every record, which makes an interrupted run
resumable and a repeated run a no-op.
"""
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Set, Union

from sqlalchemy.exc import SQLAlchemyError

from asset_relocator.core.database import AssetStore
from asset_relocator.core.exceptions import DownloadExhausted, ProbeFailed, RelocatorError, TransferFailed
from asset_relocator.core.logging_config import LogCategory, log_debug, log_error, log_info, log_warning
from asset_relocator.core.reporting import Reporter
from asset_relocator.schemas.asset import AssetRecord
from asset_relocator.schemas.migration_state import (
    FailedFile,
    MigrationState,
    ProcessedFile,
    SkippedFile,
)
from asset_relocator.services.object_storage import ObjectStoreClient
from asset_relocator.services.source_client import SourceClient
from asset_relocator.services.state_store import MigrationStateStore

DEFAULT_CONCURRENCY = 3
DRY_RUN_PREFIX = "[DRY-RUN]"
MISSING_SOURCE_REASON = "Source object missing (404)"
# Sizes in the asset table are rounded kilobytes
SIZE_TOLERANCE_BYTES = 1024

LedgerEntry = Union[ProcessedFile, FailedFile, SkippedFile]


class _KeyLock:
    """Per-key mutex, dropped once no worker holds or awaits it."""

    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


class MigrationEngine:
    """Drive the per-record pipeline across a fixed-size worker pool."""

    def __init__(
        self,
        store: AssetStore,
        object_store: ObjectStoreClient,
        source: SourceClient,
        state_store: MigrationStateStore,
        *,
        reporter: Optional[Reporter] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        dry_run: bool = False,
        verify_existing_size: bool = False,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.store = store
        self.object_store = object_store
        self.source = source
        self.state_store = state_store
        self.reporter = reporter or Reporter()
        self.concurrency = concurrency
        self.dry_run = dry_run
        self.verify_existing_size = verify_existing_size

        # Dry runs are always re-runnable from scratch
        if dry_run:
            self.state_store.persist = False

        self._key_locks: Dict[str, _KeyLock] = {}
        self._key_locks_guard = threading.Lock()
        self._uploaded_keys: Set[str] = set()
        self._progress_lock = threading.Lock()
        self._completed = 0

    def run(self) -> MigrationState:
        """
        Migrate every outstanding record.

        Returns:
            The final ledger; status is ``completed`` iff no record failed
        """
        state = self.state_store.state
        self.reporter.info(f"Migration ID: {state.migration_id}")

        all_files = self.store.get_source_files()
        processed_ids = state.processed_ids()
        pending = [record for record in all_files if str(record.id) not in processed_ids]
        total = len(processed_ids | {str(record.id) for record in all_files})

        self.reporter.info(f"Total {self.store.source_provider} files: {len(all_files)}")
        self.reporter.info(f"Already processed: {len(processed_ids)}")
        self.reporter.info(f"Remaining: {len(pending)}")

        self.state_store.begin_run(total)

        if not pending:
            self.reporter.success("No files to migrate")
            return self.state_store.finalize()

        self.reporter.section("Migration Progress")
        self._run_pool(pending)

        final_state = self.state_store.finalize()
        self._report_summary(final_state)
        return final_state

    def _run_pool(self, pending: List[AssetRecord]) -> None:
        self._completed = 0
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="relocator") as pool:
            futures = [pool.submit(self._process, record, len(pending)) for record in pending]
            for future in as_completed(futures):
                # _process converts every per-record error into a ledger entry
                future.result()

    def _process(self, record: AssetRecord, total: int) -> LedgerEntry:
        """Worker boundary: run one record and persist its outcome."""
        try:
            entry = self.migrate_record(record)
        except Exception as e:
            log_error(e, record_id=record.id, url=record.url)
            entry = FailedFile(id=record.id, original_url=record.url, error=str(e))

        self.state_store.record(entry)

        if isinstance(entry, FailedFile):
            self.reporter.error(f"Failed to migrate file {record.id}: {entry.error}")
        elif isinstance(entry, SkippedFile):
            self.reporter.warning(f"Skipped file {record.id}: {entry.reason}")

        with self._progress_lock:
            self._completed += 1
            completed = self._completed
        self.reporter.progress(completed, total, record.name)
        return entry

    def migrate_record(self, record: AssetRecord) -> LedgerEntry:
        """Run the per-record procedure and return its ledger entry."""
        started = time.monotonic()
        log_debug(f"Processing: {record.name}", category=LogCategory.TRANSFER, record_id=record.id)

        if self.source.is_missing(record.url):
            log_info(
                "Source object missing, skipping",
                category=LogCategory.TRANSFER,
                record_id=record.id,
                url=record.url,
            )
            return SkippedFile(id=record.id, original_url=record.url, reason=MISSING_SOURCE_REASON)

        key = record.storage_key

        # Records sharing a key are serialized so the object is uploaded once
        with self._key_lock(key):
            try:
                exists = self._destination_has(key, record)
            except ProbeFailed as e:
                log_error(e, record_id=record.id, key=key)
                return FailedFile(id=record.id, original_url=record.url, error=str(e))

            if exists:
                log_debug(
                    "Object already exists at destination, skipping upload",
                    category=LogCategory.TRANSFER,
                    key=key,
                )

            if self.dry_run:
                return ProcessedFile(
                    id=record.id,
                    original_url=record.url,
                    new_url=f"{DRY_RUN_PREFIX} {self.object_store.public_url_for(key)}",
                    file_size=record.size,
                    deduplicated=exists,
                    dry_run=True,
                )

            return self._transfer(record, key, exists, started)

    def _transfer(self, record: AssetRecord, key: str, exists: bool, started: float) -> LedgerEntry:
        store = self.store.clone()
        try:
            store.begin_transaction()

            if exists:
                new_url = self.object_store.public_url_for(key)
            else:
                payload = self.source.download(record.url)
                new_url = self.object_store.upload(payload, key, record.mime)
                self._uploaded_keys.add(key)

            updated = store.update_file_to_destination(record.id, new_url)
            if updated != 1:
                raise TransferFailed(f"Record {record.id} was not updated ({updated} rows matched)")

            store.commit()
        except (RelocatorError, SQLAlchemyError) as e:
            store.rollback()
            log_error(e, record_id=record.id, key=key)
            return FailedFile(
                id=record.id,
                original_url=record.url,
                error=str(e),
                retry_count=e.attempts if isinstance(e, DownloadExhausted) else 0,
            )
        finally:
            store.close()

        duration_ms = int((time.monotonic() - started) * 1000)
        log_info(
            "Migrated file",
            category=LogCategory.TRANSFER,
            record_id=record.id,
            key=key,
            deduplicated=exists,
        )
        return ProcessedFile(
            id=record.id,
            original_url=record.url,
            new_url=new_url,
            file_size=record.size,
            upload_duration_ms=duration_ms,
            deduplicated=exists,
        )

    def _destination_has(self, key: str, record: AssetRecord) -> bool:
        if key in self._uploaded_keys:
            return True

        expected = record.size_bytes
        if not self.verify_existing_size or expected is None:
            return self.object_store.exists(key)

        remote_size = self.object_store.head(key)
        if remote_size is None:
            return False
        if abs(remote_size - expected) > SIZE_TOLERANCE_BYTES:
            log_warning(
                "Existing destination object size differs from record, re-uploading",
                category=LogCategory.TRANSFER,
                key=key,
                remote_size=remote_size,
                expected_size=expected,
            )
            return False
        return True

    @contextmanager
    def _key_lock(self, key: str) -> Iterator[None]:
        with self._key_locks_guard:
            entry = self._key_locks.setdefault(key, _KeyLock())
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._key_locks_guard:
                entry.holders -= 1
                if not entry.holders:
                    del self._key_locks[key]

    def _report_summary(self, state: MigrationState) -> None:
        stats = state.statistics
        self.reporter.section("Migration Summary")
        summary = {
            "Total Files": stats.total_files,
            "Processed": stats.processed,
            "Success": stats.success,
            "Failed": stats.failed,
            "Skipped": stats.skipped,
            "Status": state.status.value,
        }
        if self.dry_run:
            summary["Would migrate"] = stats.planned
        self.reporter.stats("Migration Summary", summary)

        if stats.failed > 0:
            self.reporter.warning(f"{stats.failed} files failed to migrate")
            if self.state_store.persist:
                self.reporter.info(f"Check {self.state_store.path} for details")

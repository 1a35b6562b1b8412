"""
Durable migration ledger.

The ledger is flushed after every record with a write-to-temp-then-rename so
a crash mid-flush never leaves a truncated file behind.
"""
import json
import os
import threading
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from asset_relocator.core.exceptions import StateFileCorrupted
from asset_relocator.core.logging_config import log_debug, log_info
from asset_relocator.models.enums import MigrationStatus
from asset_relocator.schemas.migration_state import (
    FailedFile,
    MigrationState,
    ProcessedFile,
    SkippedFile,
)

LedgerEntry = Union[ProcessedFile, FailedFile, SkippedFile]


class MigrationStateStore:
    """
    Owns the in-memory ledger for one run and its file on disk.

    ``record`` is the single writer: the update and the flush happen under one
    lock so concurrent workers never lose each other's outcomes.
    """

    def __init__(self, path: Union[str, Path], persist: bool = True):
        self.path = Path(path)
        self.persist = persist
        self._lock = threading.Lock()
        self._state: Optional[MigrationState] = None

    @property
    def state(self) -> MigrationState:
        if self._state is None:
            self._state = self.load()
        return self._state

    def load(self) -> MigrationState:
        """Read the ledger, or start a fresh one when no file exists."""
        if not self.path.exists():
            log_info("No migration state found, starting a new ledger", path=str(self.path))
            return MigrationState()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            state = MigrationState.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise StateFileCorrupted(f"Could not read migration state {self.path}: {e}") from e

        log_info(
            f"Loaded migration state {state.migration_id}: "
            f"{len(state.processed_files)} processed, {len(state.failed_files)} failed, "
            f"{len(state.skipped_files)} skipped"
        )
        return state

    def begin_run(self, total_files: int) -> MigrationState:
        """Mark the ledger as in progress for a new (or resumed) run."""
        with self._lock:
            state = self.state
            state.status = MigrationStatus.IN_PROGRESS
            state.end_time = None
            state.statistics.total_files = total_files
            state.refresh_statistics()
            self._flush()
            return state

    def record(self, entry: LedgerEntry) -> MigrationState:
        """Apply one record outcome and persist the whole ledger."""
        with self._lock:
            self.state.add(entry)
            self._flush()
            return self.state

    def finalize(self) -> MigrationState:
        with self._lock:
            self.state.finalize()
            self._flush()
            return self.state

    def _flush(self) -> None:
        if not self.persist:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        payload = self.state.model_dump_json(indent=2)
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError:
            if tmp_path.exists():
                tmp_path.unlink()
            raise
        log_debug("Migration state saved", path=str(self.path))

"""
Migration ledger schemas.

The ledger is a single JSON document persisted after every record so an
interrupted run resumes exactly where it stopped.
"""
from typing import List, Optional, Set, Union

from pydantic import BaseModel, Field

from asset_relocator.core.time_utils import new_migration_id, utc_isoformat
from asset_relocator.models.enums import MigrationStatus, OutcomeStatus

RecordId = Union[int, str]


class MigrationStatistics(BaseModel):
    """Aggregate counters for a ledger."""
    total_files: int = 0
    processed: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    planned: int = Field(0, description="Dry-run records that would be migrated")


class ProcessedFile(BaseModel):
    """A record whose destination URL was written to the database."""
    id: RecordId
    status: OutcomeStatus = OutcomeStatus.SUCCESS
    original_url: Optional[str] = None
    new_url: str
    file_size: Optional[float] = None
    upload_duration_ms: Optional[int] = None
    deduplicated: bool = False
    dry_run: bool = False
    timestamp: str = Field(default_factory=utc_isoformat)


class FailedFile(BaseModel):
    """A record whose transfer or rewrite failed; retried on the next run."""
    id: RecordId
    status: OutcomeStatus = OutcomeStatus.FAILED
    original_url: Optional[str] = None
    error: str
    retry_count: int = 0
    timestamp: str = Field(default_factory=utc_isoformat)


class SkippedFile(BaseModel):
    """A record that was not moved, e.g. because its source object is gone."""
    id: RecordId
    status: OutcomeStatus = OutcomeStatus.SKIPPED
    original_url: Optional[str] = None
    reason: str
    timestamp: str = Field(default_factory=utc_isoformat)


class MigrationState(BaseModel):
    """
    Durable ledger of one migration across one or more runs.

    An id appears in at most one of the three collections at a time; a record
    retried in a later run moves out of its previous collection.
    """
    migration_id: str = Field(default_factory=new_migration_id)
    start_time: str = Field(default_factory=utc_isoformat)
    end_time: Optional[str] = None
    status: MigrationStatus = MigrationStatus.IN_PROGRESS
    statistics: MigrationStatistics = Field(default_factory=MigrationStatistics)
    processed_files: List[ProcessedFile] = Field(default_factory=list)
    failed_files: List[FailedFile] = Field(default_factory=list)
    skipped_files: List[SkippedFile] = Field(default_factory=list)

    def processed_ids(self) -> Set[str]:
        """Ids already migrated; excluded from later runs."""
        return {str(entry.id) for entry in self.processed_files}

    def discard(self, record_id: RecordId) -> None:
        """Remove every entry for a record id from all collections."""
        key = str(record_id)
        self.processed_files = [e for e in self.processed_files if str(e.id) != key]
        self.failed_files = [e for e in self.failed_files if str(e.id) != key]
        self.skipped_files = [e for e in self.skipped_files if str(e.id) != key]

    def add(self, entry: Union[ProcessedFile, FailedFile, SkippedFile]) -> None:
        """Record an outcome, replacing any previous outcome for the same id."""
        self.discard(entry.id)
        if isinstance(entry, ProcessedFile):
            self.processed_files.append(entry)
        elif isinstance(entry, FailedFile):
            self.failed_files.append(entry)
        else:
            self.skipped_files.append(entry)
        self.refresh_statistics()

    def refresh_statistics(self) -> None:
        stats = self.statistics
        stats.success = sum(1 for e in self.processed_files if not e.dry_run)
        stats.planned = sum(1 for e in self.processed_files if e.dry_run)
        stats.failed = len(self.failed_files)
        stats.skipped = len(self.skipped_files)
        stats.processed = len(self.processed_files) + stats.failed + stats.skipped

    def finalize(self) -> None:
        """Close the run; the status taxonomy is binary."""
        self.refresh_statistics()
        self.end_time = utc_isoformat()
        self.status = (
            MigrationStatus.COMPLETED_WITH_ERRORS
            if self.statistics.failed > 0
            else MigrationStatus.COMPLETED
        )

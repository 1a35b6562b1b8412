"""
Enums and constants for the relocator.
"""
from enum import Enum


class DatabaseClient(str, Enum):
    """Supported relational store backends."""
    SQLITE = "sqlite"
    POSTGRES = "postgres"


class MigrationStatus(str, Enum):
    """Run-level status of a migration ledger."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"


class OutcomeStatus(str, Enum):
    """Terminal outcome of a single record."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"

"""
Timestamp helpers shared by the migration ledger and backup artifacts.
"""
from datetime import datetime, timezone

TIMESTAMP_TOKEN_FORMAT = "%Y-%m-%d-%H-%M-%S"
TIMESTAMP_TOKEN_PATTERN = r"\d{4}-\d{2}-\d{2}-\d{2}-\d{2}-\d{2}"


def utc_now() -> datetime:
    """Return current UTC datetime with timezone info attached."""
    return datetime.now(timezone.utc)


def utc_isoformat(dt: datetime | None = None) -> str:
    """ISO-8601 string with a trailing Z, e.g. 2025-12-23T10:00:00.123Z."""
    dt = dt or utc_now()
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def timestamp_token(dt: datetime | None = None) -> str:
    """
    Filesystem-safe token used to group the artifacts of one backup run.

    Example:
        >>> timestamp_token(datetime(2025, 12, 23, 10, 0, 0, tzinfo=timezone.utc))
        '2025-12-23-10-00-00'
    """
    dt = dt or utc_now()
    return dt.strftime(TIMESTAMP_TOKEN_FORMAT)


def parse_timestamp_token(token: str) -> datetime:
    """Inverse of timestamp_token."""
    return datetime.strptime(token, TIMESTAMP_TOKEN_FORMAT).replace(tzinfo=timezone.utc)


def new_migration_id(dt: datetime | None = None) -> str:
    """Time-derived identifier for a migration run."""
    dt = dt or utc_now()
    return f"migration-{dt.strftime('%Y-%m-%dT%H-%M-%S')}"

"""
Custom relocator exceptions.
"""


class RelocatorError(Exception):
    """Base exception for the asset relocator."""
    pass


class StoreUnavailable(RelocatorError):
    """Raised when the relational store cannot be reached at startup."""
    pass


class TransferFailed(RelocatorError):
    """Raised when moving a single asset fails."""
    pass


class DownloadExhausted(TransferFailed):
    """Raised when every download attempt from the source provider failed."""

    def __init__(self, url: str, attempts: int, last_error: str):
        super().__init__(f"Download exhausted after {attempts} attempts: {last_error}")
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class AssetTooLarge(TransferFailed):
    """Raised when a source asset exceeds the per-asset size ceiling."""

    def __init__(self, url: str, limit_bytes: int):
        super().__init__(f"Asset exceeds {limit_bytes} byte limit: {url}")
        self.url = url
        self.limit_bytes = limit_bytes


class UploadFailed(TransferFailed):
    """Raised when the destination store rejects an upload."""

    def __init__(self, key: str, cause: Exception):
        super().__init__(f"Failed to upload {key}: {cause}")
        self.key = key
        self.cause = cause


class ProbeFailed(RelocatorError):
    """Raised when an existence probe fails for a reason other than absence."""
    pass


class InvalidEndpoint(RelocatorError):
    """Raised when the destination endpoint does not match the expected pattern."""
    pass


class BackupArtifactMissing(RelocatorError):
    """Raised when a backup artifact could not be written or found."""
    pass


class BackupNotFound(RelocatorError):
    """Raised when no backup set matches the requested timestamp."""
    pass


class RestoreAborted(RelocatorError):
    """Raised when the operator declines the restore confirmation."""
    pass


class StateFileCorrupted(RelocatorError):
    """Raised when the persisted migration ledger cannot be parsed."""
    pass

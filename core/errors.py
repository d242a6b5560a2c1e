"""Error hierarchy for the content sync engine.

Sync-phase errors are collected into the run result rather than raised;
push errors are converted into per-record results. MigrationError is the
only error that is allowed to abort startup.
"""

from typing import Any, List, Optional


class ContentSyncError(Exception):
    """Base exception for all content sync errors."""
    pass


class TransportError(ContentSyncError):
    """Network failure or non-2xx response from the remote API."""
    def __init__(self, message: str, status_code: Optional[int] = None, response_body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ConflictError(ContentSyncError):
    """Remote record changed since the local copy was last synced."""
    def __init__(self, conflicts: List[Any]):
        self.conflicts = conflicts
        summary = ", ".join(
            f"{c.resource_id} (local {c.local_modified}, server {c.server_modified})"
            for c in conflicts
        )
        super().__init__(f"Conflict detected: {summary}")


class MigrationError(ContentSyncError):
    """Schema could not be upgraded. Fatal, never retried."""
    def __init__(self, from_version: int, to_version: int, cause: Exception):
        super().__init__(
            f"Schema migration v{from_version} -> v{to_version} failed: {cause}"
        )
        self.from_version = from_version
        self.to_version = to_version
        self.cause = cause


class ValidationError(ContentSyncError):
    """Local data is not valid for the requested operation."""
    pass


class ConfigurationError(ContentSyncError):
    """Required configuration is missing or malformed."""
    pass

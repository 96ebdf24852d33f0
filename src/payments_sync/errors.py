"""Exception taxonomy for the synchronization engine.

Adapter transport errors (rate limits, 5xx, connection failures) are not
wrapped: they propagate to the caller exactly as the adapter raised them.
"""

from typing import Optional


class SyncError(Exception):
    """Base class for synchronization errors."""


class StateDecodeError(SyncError, ValueError):
    """The continuation state blob could not be decoded."""


class RecordMappingError(SyncError, ValueError):
    """A provider-native record could not be mapped to a canonical record.

    The whole page is discarded when this is raised, so the watermark never
    moves past a record that failed to map.
    """

    def __init__(self, message: str, reference: Optional[str] = None):
        super().__init__(message)
        self.reference = reference


class FetchCancelledError(SyncError):
    """The caller cancelled the call while a backlog scan was running."""


class MissingFromPayloadError(SyncError, ValueError):
    """The adapter needs source context (e.g. a parent account) and got none."""


class UnsupportedSourceError(SyncError, TypeError):
    """The adapter does not declare a known source kind."""

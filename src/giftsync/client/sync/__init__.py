"""Sync of the cached export file with the Drive folder.

Architecture:
    PeriodicSyncTrigger → SyncJob → SyncEngine → RemoteStore / LocalCache

Components:
- **SyncEngine**: Lists the folder, decides staleness, fetches the newest file
- **LocalCache**: The cached file, replaced atomically
- **SyncJob**: Maps a pass result to SUCCESS / RETRY / FAILURE
- **PeriodicSyncTrigger**: APScheduler interval job with backoff retries
"""

from giftsync.client.sync.cache import LocalCache
from giftsync.client.sync.engine import (
    SyncEngine,
    decide,
    filter_candidates,
    select_candidate,
)
from giftsync.client.sync.retry import (
    DEFAULT_MAX_RETRIES,
    classify_error,
    max_attempts_for,
    retry_with_backoff,
)
from giftsync.client.sync.trigger import JobResult, PeriodicSyncTrigger, SyncJob
from giftsync.client.sync.types import (
    DownloadError,
    ErrorKind,
    Fetch,
    FileIOError,
    LocalCacheEntry,
    NoCandidates,
    SyncDecision,
    SyncError,
    SyncResult,
    UpToDate,
)

__all__ = [
    # Engine
    "SyncEngine",
    "decide",
    "filter_candidates",
    "select_candidate",
    # Cache
    "LocalCache",
    "LocalCacheEntry",
    # Retry
    "DEFAULT_MAX_RETRIES",
    "classify_error",
    "max_attempts_for",
    "retry_with_backoff",
    # Trigger
    "JobResult",
    "PeriodicSyncTrigger",
    "SyncJob",
    # Types
    "DownloadError",
    "ErrorKind",
    "Fetch",
    "FileIOError",
    "NoCandidates",
    "SyncDecision",
    "SyncError",
    "SyncResult",
    "UpToDate",
]

"""Shared types for sync passes.

This module provides:
- SyncError, DownloadError, FileIOError: Exception classes
- LocalCacheEntry: State of the cached file
- NoCandidates, UpToDate, Fetch: Sync decision variants
- ErrorKind: Classification of a failed pass
- SyncResult: Outcome of one pass
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from giftsync.client.api import FileMetadata


class SyncError(Exception):
    """Base exception for sync errors."""


class DownloadError(SyncError):
    """Failed to download the candidate file."""


class FileIOError(SyncError):
    """Failed to write or replace the local cache file."""


@dataclass(frozen=True)
class LocalCacheEntry:
    """Snapshot of the local cache file.

    Attributes:
        path: Location of the cached file.
        exists: Whether the file is present.
        last_modified_at: Modification time (None when absent).
    """

    path: Path
    exists: bool
    last_modified_at: datetime | None = None


@dataclass(frozen=True)
class NoCandidates:
    """No remote file matched the target suffix."""


@dataclass(frozen=True)
class UpToDate:
    """The cache is at least as new as the newest candidate."""

    candidate: FileMetadata


@dataclass(frozen=True)
class Fetch:
    """The candidate must be downloaded into the cache."""

    candidate: FileMetadata


SyncDecision = NoCandidates | UpToDate | Fetch


class ErrorKind(Enum):
    """Classification of a failed pass, used for retry budgets."""

    NO_INTERNET = auto()
    DNS_FAILURE = auto()
    TIMEOUT = auto()
    SSL_ERROR = auto()
    AUTH_ERROR = auto()
    RATE_LIMITED = auto()
    SERVER_ERROR = auto()
    FILE_IO = auto()
    UNKNOWN = auto()


@dataclass
class SyncResult:
    """Outcome of one sync pass.

    Attributes:
        decision: The decision taken (None if the pass failed before deciding).
        downloaded: Whether the cache file was replaced.
        error: The failure, if any.
        error_kind: Classification of the failure.
    """

    decision: SyncDecision | None = None
    downloaded: bool = False
    error: Exception | None = None
    error_kind: ErrorKind | None = None

    @property
    def success(self) -> bool:
        """True for NoCandidates, UpToDate and completed fetches."""
        return self.error is None

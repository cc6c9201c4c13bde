"""Sync engine: decide whether the cached export is stale and refresh it.

Algorithm for one pass:
    1. List the folder and keep names ending with the target suffix.
    2. No candidates -> NoCandidates (success, nothing to do).
    3. Pick the candidate with the greatest modified_at. On equal
       timestamps the first one in listing order wins.
    4. Cache missing -> Fetch.
    5. Candidate strictly newer than the cache (millisecond precision)
       -> Fetch, otherwise UpToDate.
    6. Fetch streams into a temporary file and atomically replaces the
       cache only after the download completed.

The engine keeps no mutable state between passes; everything a pass
touches lives in local variables, so concurrent passes are safe as long
as they target different cache files.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING

from giftsync.client.sync.retry import DEFAULT_MAX_RETRIES, classify_error, retry_with_backoff
from giftsync.client.sync.types import (
    DownloadError,
    Fetch,
    LocalCacheEntry,
    NoCandidates,
    SyncDecision,
    SyncResult,
    UpToDate,
)
from giftsync.core.timeutil import format_instant, to_epoch_millis

if TYPE_CHECKING:
    from giftsync.client.api import FileMetadata, RemoteStore
    from giftsync.client.sync.cache import LocalCache

logger = logging.getLogger(__name__)


def filter_candidates(files: Iterable[FileMetadata], target_suffix: str) -> list[FileMetadata]:
    """Keep files whose name ends with the target suffix, in input order."""
    return [f for f in files if f.name.endswith(target_suffix)]


def select_candidate(candidates: Iterable[FileMetadata]) -> FileMetadata | None:
    """Select the newest candidate.

    Ties on modified_at are broken by input order: the first-encountered
    file wins, so the result is stable for a given listing order.

    Returns:
        The newest candidate, or None if there are none.
    """
    newest: FileMetadata | None = None
    for candidate in candidates:
        if newest is None or to_epoch_millis(candidate.modified_at) > to_epoch_millis(newest.modified_at):
            newest = candidate
    return newest


def decide(candidates: Iterable[FileMetadata], cache: LocalCacheEntry) -> SyncDecision:
    """Decide what a pass must do. Pure function, no side effects.

    Args:
        candidates: Files already filtered to the target suffix.
        cache: Current state of the local cache.

    Returns:
        NoCandidates, UpToDate(candidate) or Fetch(candidate).
    """
    candidate = select_candidate(candidates)
    if candidate is None:
        return NoCandidates()
    if not cache.exists or cache.last_modified_at is None:
        return Fetch(candidate)
    if to_epoch_millis(candidate.modified_at) > to_epoch_millis(cache.last_modified_at):
        return Fetch(candidate)
    return UpToDate(candidate)


class SyncEngine:
    """Runs sync passes of one remote folder against one cache file."""

    def __init__(
        self,
        store: RemoteStore,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Remote store to list and download from.
            max_retries: Per-call retries for transient listing errors.
            sleep: Sleep function used between retries (injectable for tests).
        """
        self._store = store
        self._max_retries = max_retries
        self._sleep = sleep

    def _list_candidates(self, folder_id: str, target_suffix: str) -> list[FileMetadata]:
        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        files = retry_with_backoff(
            lambda: self._store.list_files_in_folder(folder_id),
            max_retries=self._max_retries,
            **kwargs,
        )
        candidates = filter_candidates(files, target_suffix)
        logger.debug(
            "Found %d %s files among %d in folder", len(candidates), target_suffix, len(files)
        )
        return candidates

    def _fetch(self, candidate: FileMetadata, cache: LocalCache) -> int:
        logger.info(
            "Downloading %s (%d bytes, modified %s)",
            candidate.name,
            candidate.size,
            format_instant(candidate.modified_at),
        )
        with self._store.download_file(candidate.id) as stream:
            written = cache.replace(_guarded(stream.iter_bytes(), candidate), candidate.modified_at)
        logger.info("Cached %s as %s (%d bytes)", candidate.name, cache.path, written)
        return written

    def run_pass(
        self,
        folder_id: str,
        target_suffix: str,
        cache: LocalCache,
        force: bool = False,
    ) -> SyncResult:
        """Run one sync pass.

        Failures are returned, not raised: the caller decides whether to
        retry based on ``result.error_kind``.

        Args:
            folder_id: Remote folder to inspect.
            target_suffix: Name suffix candidates must end with.
            cache: Local cache to compare against and refresh.
            force: Fetch the newest candidate even when the cache is up to date.

        Returns:
            SyncResult describing the decision and any failure.
        """
        result = SyncResult()
        try:
            self._store.initialize()
            candidates = self._list_candidates(folder_id, target_suffix)
            decision = decide(candidates, cache.entry())
            if force and isinstance(decision, UpToDate):
                logger.info("Forced download of %s", decision.candidate.name)
                decision = Fetch(decision.candidate)
            result.decision = decision

            if isinstance(decision, NoCandidates):
                logger.info("No %s files in folder - nothing to download", target_suffix)
            elif isinstance(decision, UpToDate):
                logger.info("Cache is up to date with %s", decision.candidate.name)
            else:
                self._fetch(decision.candidate, cache)
                result.downloaded = True
        except Exception as e:
            result.error = e
            result.error_kind = classify_error(e)
            logger.warning("Sync pass failed (%s): %s", result.error_kind.name, e)
        return result


def _guarded(chunks: Iterator[bytes], candidate: FileMetadata) -> Iterator[bytes]:
    """Wrap stream errors in DownloadError, keeping the original as cause."""
    try:
        yield from chunks
    except Exception as e:
        raise DownloadError(f"Download of {candidate.name} failed: {e}") from e

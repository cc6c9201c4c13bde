"""Local cache of the downloaded export file.

This module provides:
- LocalCache: One named file plus its modification time, replaced atomically
"""

from __future__ import annotations

import contextlib
import logging
import os
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from giftsync.client.sync.types import FileIOError, LocalCacheEntry
from giftsync.core.timeutil import from_epoch_nanos, to_epoch_millis

logger = logging.getLogger(__name__)

TMP_SUFFIX = ".tmp"


class LocalCache:
    """A single cached file on local storage.

    The file is only ever replaced with ``os.replace`` from a fully written
    sibling temporary file, so readers see either the old or the new
    content, never a partial one.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @property
    def tmp_path(self) -> Path:
        return self._path.with_name(self._path.name + TMP_SUFFIX)

    def entry(self) -> LocalCacheEntry:
        """Snapshot the current state of the cached file."""
        try:
            stat = self._path.stat()
        except FileNotFoundError:
            return LocalCacheEntry(path=self._path, exists=False)
        except OSError as e:
            raise FileIOError(f"Cannot stat {self._path}: {e}") from e
        return LocalCacheEntry(
            path=self._path,
            exists=True,
            last_modified_at=from_epoch_nanos(stat.st_mtime_ns),
        )

    def replace(self, chunks: Iterable[bytes], modified_at: datetime) -> int:
        """Write content to a temporary file, then atomically replace the cache.

        The temporary file is removed if writing fails at any point; the
        existing cache file is left untouched in that case.

        Args:
            chunks: Content to write.
            modified_at: Modification time to stamp on the new file.

        Returns:
            Number of bytes written.

        Raises:
            FileIOError: If the file cannot be written or replaced.
            Any exception raised while iterating chunks is propagated.
        """
        tmp_path = self.tmp_path
        written = 0
        try:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                f = open(tmp_path, "wb")
            except OSError as e:
                raise FileIOError(f"Cannot create {tmp_path}: {e}") from e

            with f:
                for chunk in chunks:
                    try:
                        f.write(chunk)
                    except OSError as e:
                        raise FileIOError(f"Cannot write {tmp_path}: {e}") from e
                    written += len(chunk)
                try:
                    f.flush()
                    os.fsync(f.fileno())
                except OSError as e:
                    raise FileIOError(f"Cannot flush {tmp_path}: {e}") from e

            try:
                mtime_ns = to_epoch_millis(modified_at) * 1_000_000
                os.utime(tmp_path, ns=(mtime_ns, mtime_ns))
                os.replace(tmp_path, self._path)
            except OSError as e:
                raise FileIOError(f"Cannot replace {self._path}: {e}") from e
        except BaseException:
            with contextlib.suppress(OSError):
                tmp_path.unlink()
            raise

        logger.debug("Replaced %s (%d bytes)", self._path, written)
        return written

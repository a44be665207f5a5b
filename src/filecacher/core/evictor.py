"""Disk-space-bounded eviction of the oldest cached files."""

import os
import stat
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from ..ports.cache import CacheEntryPort
from ..ports.clock import ClockPort
from ..ports.disk import DiskSpacePort
from ..ports.logger import LoggerPort
from ..ports.metrics import MetricsPort
from .errors import CapacityError, FileCacherError, FreeSpaceError, RunawayLoopError
from .log_budget import DurableLogBudget
from .models import CacheFileEntry, Perspective

BYTES_PER_GB = 1024**3
DEFAULT_BATCH_SIZE = 500
MINIMUM_BATCH_SIZE = 50
MAX_ITERATIONS = 25


def bytes_to_gb(value: int) -> float:
    return value / BYTES_PER_GB


@dataclass
class EvictionResult:
    """Outcome of one eviction run."""

    success: bool = True
    message: str = ""
    iterations: int = 0
    files_deleted: int = 0
    bytes_freed: int = 0
    entries_purged: int = 0
    cache_root: str = ""
    free_space_gb: float | None = None

    def __bool__(self) -> bool:
        return self.success


@dataclass
class PurgeBatchResult:
    """Outcome of purging one batch of cached entries."""

    purged_entry_ids: list[int] = field(default_factory=list)
    files_deleted: int = 0
    bytes_freed: int = 0
    rows_updated: int = 0
    parent_dirs: set[Path] = field(default_factory=set)


def _normalized(path: str | Path) -> str:
    return os.path.normcase(os.path.abspath(path))


def _is_within(path: str, root: str) -> bool:
    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        return False


class Evictor:
    """Delete the oldest cached files until the cache drive has enough free space.

    Each iteration reads a fresh batch of the oldest cached entries, measures
    free space at the cache root and, while below the floor, deletes files in
    queued order until enough bytes are reclaimed. Every entry visited is
    marked purged whether or not its file was still on disk.
    """

    def __init__(
        self,
        store: CacheEntryPort,
        logger: LoggerPort,
        metrics: MetricsPort,
        clock: ClockPort,
        probe_for_path: Callable[[str], DiskSpacePort],
        perspective: Perspective = Perspective.SERVER,
        server_name: str = "",
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_iterations: int = MAX_ITERATIONS,
    ):
        self.store = store
        self.logger = logger
        self.metrics = metrics
        self.clock = clock
        self.probe_for_path = probe_for_path
        self.perspective = perspective
        self.server_name = server_name
        self.batch_size = max(batch_size, MINIMUM_BATCH_SIZE)
        self.max_iterations = max_iterations

    def run(self, minimum_free_space_gb: float) -> EvictionResult:
        """Purge old files until free space exceeds the floor.

        A floor of zero or less disables eviction.
        """
        result = EvictionResult()
        if minimum_free_space_gb <= 0:
            result.message = "Free space check disabled"
            return result

        start_time = self.clock.now()
        try:
            self._evict(minimum_free_space_gb, result)
        except FileCacherError as e:
            result.success = False
            result.message = str(e)
            self.logger.error(result.message, durable=True)
        except Exception as e:
            result.success = False
            result.message = f"Error managing cached files for server {self.server_name}: {e}"
            self.logger.error(result.message, durable=True, exc_info=True)

        duration = (self.clock.now() - start_time).total_seconds()
        self.logger.log_operation(
            op="evict",
            durations={"total": duration},
            success=result.success,
            iterations=result.iterations,
            files_deleted=result.files_deleted,
            bytes_freed=result.bytes_freed,
        )
        self.metrics.timing("filecacher.evict.duration", duration)
        self.metrics.increment("filecacher.evict.files_deleted", result.files_deleted)
        self.metrics.gauge("filecacher.evict.bytes_freed", result.bytes_freed)
        return result

    def _evict(self, minimum_free_space_gb: float, result: EvictionResult) -> None:
        floor_bytes = int(minimum_free_space_gb * BYTES_PER_GB)
        free_bytes = -1

        while True:
            result.iterations += 1
            if result.iterations > self.max_iterations:
                raise RunawayLoopError(
                    f"Eviction loop has run over {self.max_iterations} times; "
                    "there is likely a problem"
                )

            entries = self.store.get_oldest_cached_files(self.batch_size)

            if not entries:
                if not result.cache_root:
                    # Free space can only be measured through a cached entry's root path
                    self.logger.debug("No cached files found; nothing to evict")
                    return
                raise CapacityError(
                    f"Disk free space is {bytes_to_gb(free_bytes):.1f} GB, which is below "
                    f"the threshold of {minimum_free_space_gb} GB. However, no more files "
                    "can be purged (none are in the cached state)"
                )

            if not result.cache_root:
                result.cache_root = self._cache_root(entries[0])

            free_bytes = self.probe_for_path(result.cache_root).free_bytes(result.cache_root)
            if free_bytes < 0:
                raise FreeSpaceError(
                    f"Unable to determine the disk free space of {result.cache_root}"
                )
            result.free_space_gb = bytes_to_gb(free_bytes)

            if free_bytes > floor_bytes:
                self.logger.debug(
                    "Eviction not required",
                    cache_root=result.cache_root,
                    free_gb=f"{result.free_space_gb:.1f}",
                )
                return

            self.logger.info(
                f"Disk free space of {result.free_space_gb:.1f} GB is below the threshold "
                f"of {minimum_free_space_gb} GB; purge required",
                cache_root=result.cache_root,
            )

            batch = self.purge_old_files(entries, result.cache_root, floor_bytes - free_bytes)
            result.files_deleted += batch.files_deleted
            result.bytes_freed += batch.bytes_freed
            result.entries_purged += len(batch.purged_entry_ids)

    def _cache_root(self, entry: CacheFileEntry) -> str:
        cache_root = entry.root_path(self.perspective)
        if not cache_root:
            column = "server_path" if self.perspective is Perspective.SERVER else "client_path"
            raise FileCacherError(
                f"{column} is empty for entry {entry.entry_id}, {entry.filename}; "
                "unable to manage cached files"
            )
        return cache_root

    def purge_old_files(
        self,
        entries: list[CacheFileEntry],
        cache_root: str,
        bytes_to_reclaim: int,
    ) -> PurgeBatchResult:
        """Delete files oldest first until bytes_to_reclaim is met or the batch runs out."""
        batch = PurgeBatchResult()
        budget = DurableLogBudget()

        for entry in entries:
            file_path = entry.path_under(cache_root)
            if file_path.is_file():
                batch.parent_dirs.add(file_path.parent)
                try:
                    batch.bytes_freed += self._delete_file(file_path)
                    batch.files_deleted += 1
                except OSError as e:
                    self.logger.error(
                        f"Exception deleting file {file_path}: {e}", durable=budget.take()
                    )

            # Missing files count as already reclaimed
            batch.purged_entry_ids.append(entry.entry_id)

            if batch.files_deleted > 0 and batch.bytes_freed >= bytes_to_reclaim:
                break

        if batch.files_deleted > 0:
            message = (
                f"Deleted {batch.files_deleted} files to free up "
                f"{bytes_to_gb(batch.bytes_freed):.1f} GB in {cache_root}"
            )
            if self.perspective is Perspective.SERVER and self.server_name:
                message += f" on {self.server_name}"
            self.logger.info(message, durable=True)

        if batch.purged_entry_ids:
            batch.rows_updated = self.store.mark_purged(batch.purged_entry_ids)
            if batch.rows_updated < len(batch.purged_entry_ids):
                self.logger.warning(
                    f"The number of cache entries updated to the purged state is "
                    f"{batch.rows_updated}, which is less than the expected value of "
                    f"{len(batch.purged_entry_ids)}",
                    durable=True,
                )

        for folder in sorted(batch.parent_dirs, key=lambda p: len(p.parts), reverse=True):
            self.delete_folder_if_empty(cache_root, folder)

        return batch

    @staticmethod
    def _delete_file(file_path: Path) -> int:
        st = file_path.stat()
        if not st.st_mode & stat.S_IWRITE:
            file_path.chmod(st.st_mode | stat.S_IWRITE)
        file_path.unlink()
        return st.st_size

    def delete_folder_if_empty(self, cache_root: str, folder: Path) -> None:
        """Remove folder and its empty ancestors, stopping at the cache root."""
        root = _normalized(cache_root)
        current = folder

        while True:
            normalized = _normalized(current)
            if normalized == root or not _is_within(normalized, root):
                return
            try:
                if not current.is_dir() or any(current.iterdir()):
                    return
                current.rmdir()
            except OSError as e:
                self.logger.debug(f"Could not remove folder {current}: {e}")
                return
            current = current.parent

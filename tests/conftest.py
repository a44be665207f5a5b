"""Shared pytest fixtures and in-memory port fakes for FileCacher tests."""

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from filecacher.core import (
    ArchivedFileRef,
    CacheFileEntry,
    CacheState,
    DownloadSummary,
    OverwriteMode,
    TaskLease,
)

# ============================================================================
# Port fakes
# ============================================================================


class RecordingLogger:
    """LoggerPort that keeps every record in memory."""

    def __init__(self):
        self.records: list[tuple[str, str, dict[str, Any]]] = []
        self.operations: list[tuple[str, dict[str, float] | None, dict[str, Any]]] = []

    def _record(self, level: str, message: str, **kwargs: Any) -> None:
        self.records.append((level, message, kwargs))

    def debug(self, message: str, **kwargs: Any) -> None:
        self._record("debug", message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._record("info", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._record("warning", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._record("error", message, **kwargs)

    def log_operation(self, op: str, durations: dict[str, float] | None = None, **kwargs: Any):
        self.operations.append((op, durations, kwargs))

    def messages(self, level: str | None = None) -> list[str]:
        return [msg for lvl, msg, _ in self.records if level is None or lvl == level]

    def durable(self, level: str | None = None) -> list[str]:
        return [
            msg
            for lvl, msg, kwargs in self.records
            if kwargs.get("durable") and (level is None or lvl == level)
        ]


class RecordingMetrics:
    """MetricsPort that keeps every metric in memory."""

    def __init__(self):
        self.calls: list[tuple[str, str, float]] = []

    def increment(self, name: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        self.calls.append(("increment", name, value))

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.calls.append(("gauge", name, value))

    def timing(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.calls.append(("timing", name, value))

    def names(self) -> list[str]:
        return [name for _, name, _ in self.calls]


class FixedClock:
    def __init__(self, local: datetime | None = None):
        self.local = local or datetime(2024, 3, 1, 12, 0, 0)

    def now(self) -> datetime:
        return datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)

    def local_now(self) -> datetime:
        return self.local


class FakeStore:
    """Task store and cache entry store held in dictionaries."""

    def __init__(self, entries: list[CacheFileEntry] | None = None):
        self.entries: dict[int, CacheFileEntry] = {e.entry_id: e for e in entries or []}
        self.task_entries: dict[int, list[int]] = {}
        self.leases: list[TaskLease] = []
        self.completed: list[tuple[int, int, str, list[int]]] = []
        self.purge_calls: list[list[int]] = []
        self.rows_updated: int | None = None
        self.request_error: Exception | None = None
        self.complete_error: Exception | None = None
        self.mutations = 0

    def add(self, *entries: CacheFileEntry) -> None:
        for entry in entries:
            self.entries[entry.entry_id] = entry

    def add_task(self, task_id: int, entry_ids: list[int]) -> None:
        self.task_entries[task_id] = list(entry_ids)
        self.leases.append(TaskLease(task_available=True, task_id=task_id))

    # TaskStorePort

    def request_task(self, processor_name: str) -> TaskLease:
        if self.request_error is not None:
            raise self.request_error
        if self.leases:
            self.mutations += 1
            return self.leases.pop(0)
        return TaskLease(task_available=False, message="No queued files")

    def set_task_complete(self, processor_name, task_id, completion_code, completion_message, cached_entry_ids):
        if self.complete_error is not None:
            raise self.complete_error
        self.mutations += 1
        self.completed.append((task_id, completion_code, completion_message, list(cached_entry_ids)))
        return f"Task {task_id} closed"

    # CacheEntryPort

    def get_files_to_cache(self, task_id: int = 0) -> list[CacheFileEntry]:
        if task_id:
            return [self.entries[i] for i in self.task_entries.get(task_id, [])]
        queued = sorted(
            (e for e in self.entries.values() if e.state is CacheState.QUEUED),
            key=lambda e: (e.queued_at, e.entry_id),
        )
        if not queued:
            return []
        return [e for e in queued if e.dataset_id == queued[0].dataset_id]

    def get_oldest_cached_files(self, max_count: int) -> list[CacheFileEntry]:
        cached = [e for e in self.entries.values() if e.state is CacheState.CACHED]
        cached.sort(key=lambda e: (e.queued_at, e.entry_id))
        return cached[:max_count]

    def mark_purged(self, entry_ids) -> int:
        ids = list(entry_ids)
        self.purge_calls.append(ids)
        self.mutations += 1
        updated = 0
        for entry_id in ids:
            entry = self.entries.get(entry_id)
            if entry is not None and entry.state is not CacheState.PURGED:
                self.entries[entry_id] = replace(entry, state=CacheState.PURGED)
                updated += 1
        return updated if self.rows_updated is None else self.rows_updated


class FakeArchive:
    """ArchivePort serving file listings from a dictionary."""

    def __init__(self, files: dict[int, list[ArchivedFileRef]] | None = None):
        self.files = files or {}
        self.find_calls: list[int] = []
        self.download_calls: list[tuple[dict[int, ArchivedFileRef], Path, OverwriteMode]] = []
        self.find_error: Exception | None = None
        self.download_error: Exception | None = None

    def find_files_by_dataset_id(self, dataset_id: int) -> list[ArchivedFileRef]:
        self.find_calls.append(dataset_id)
        if self.find_error is not None:
            raise self.find_error
        return list(self.files.get(dataset_id, []))

    def download_files(self, files, target_dir, overwrite=OverwriteMode.IF_CHANGED):
        self.download_calls.append((dict(files), Path(target_dir), overwrite))
        if self.download_error is not None:
            raise self.download_error
        return DownloadSummary(downloaded=len(files))


class FixedDiskSpace:
    """DiskSpacePort returning scripted readings; the last one repeats."""

    def __init__(self, *readings: int):
        self.readings = list(readings) or [0]
        self.paths: list[str] = []

    def free_bytes(self, path: str) -> int:
        self.paths.append(path)
        if len(self.readings) > 1:
            return self.readings.pop(0)
        return self.readings[0]


class DiskUsageProbe:
    """DiskSpacePort whose free space grows as files under root are deleted."""

    def __init__(self, initial_free: int, root: Path):
        self.initial_free = initial_free
        self.root = root
        self.initial_used = self._used()
        self.paths: list[str] = []

    def _used(self) -> int:
        return sum(p.stat().st_size for p in self.root.rglob("*") if p.is_file())

    def free_bytes(self, path: str) -> int:
        self.paths.append(path)
        return self.initial_free + self.initial_used - self._used()


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    root = tmp_path / "cache"
    root.mkdir()
    return root


@pytest.fixture
def make_entry(cache_root: Path):
    """Factory for cache entries rooted at the temporary cache root."""

    def factory(entry_id: int, **kwargs: Any) -> CacheFileEntry:
        values: dict[str, Any] = {
            "dataset_id": 42,
            "job": 7,
            "server_path": str(cache_root),
            "client_path": "//cachehost/cache",
            "parent_path": "Projects",
            "dataset_folder": "Dataset_42",
            "results_folder_name": "Results",
            "filename": f"file{entry_id:03d}.dat",
            "queued_at": datetime(2024, 1, 1) + timedelta(minutes=entry_id),
            "state": CacheState.CACHED,
        }
        values.update(kwargs)
        return CacheFileEntry(entry_id=entry_id, **values)

    return factory


@pytest.fixture
def make_ref():
    """Factory for archived file revisions."""

    def factory(file_id: int, filename: str, sub_dir_path: str = "Results", **kwargs: Any):
        return ArchivedFileRef(
            file_id=file_id,
            sub_dir_path=sub_dir_path,
            filename=filename,
            key=f"datasets/42/{sub_dir_path}/{filename}",
            **kwargs,
        )

    return factory


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def archive() -> FakeArchive:
    return FakeArchive()


@pytest.fixture
def disk() -> FixedDiskSpace:
    """Probe with scripted readings; assign ``disk.readings`` in the test."""
    return FixedDiskSpace()


@pytest.fixture
def usage_probe(cache_root: Path):
    """Factory for a probe tracking deletions under the cache root."""

    def factory(initial_free: int) -> DiskUsageProbe:
        return DiskUsageProbe(initial_free, cache_root)

    return factory

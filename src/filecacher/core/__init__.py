"""Core domain for FileCacher."""

from .models import (
    ArchivedFileRef,
    CacheFileEntry,
    CacheState,
    CacheTask,
    CompletionResult,
    DownloadSummary,
    OverwriteMode,
    Perspective,
    TaskLease,
    TaskState,
)
from .errors import (
    ArchiveError,
    ArchiveOfflineError,
    CapacityError,
    ConfigurationError,
    FileCacherError,
    FreeSpaceError,
    RunawayLoopError,
    TaskStoreError,
)
from .config import FileCacherConfig
from .matcher import ArchiveFileMatcher, MatchResult

__all__ = [
    "ArchiveError",
    "ArchiveFileMatcher",
    "ArchiveOfflineError",
    "ArchivedFileRef",
    "CacheFileEntry",
    "CacheState",
    "CacheTask",
    "CapacityError",
    "CompletionResult",
    "ConfigurationError",
    "DownloadSummary",
    "FileCacherConfig",
    "FileCacherError",
    "FreeSpaceError",
    "MatchResult",
    "OverwriteMode",
    "Perspective",
    "RunawayLoopError",
    "TaskLease",
    "TaskState",
    "TaskStoreError",
]

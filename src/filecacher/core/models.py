"""Core domain models."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, IntEnum
from pathlib import Path


class Perspective(Enum):
    """Which path column of a cache entry is authoritative.

    SERVER: the agent runs on the cache host and uses local drive paths.
    CLIENT: the agent runs elsewhere and addresses the cache through network paths.
    """

    SERVER = "server"
    CLIENT = "client"


class CacheState(IntEnum):
    """Lifecycle state of a cache entry, as stored in the task store."""

    QUEUED = 1
    IN_PROGRESS = 2
    CACHED = 3
    FAILED = 4
    PURGED = 5


class TaskState(IntEnum):
    """Lifecycle state of a leased cache task."""

    IN_PROGRESS = 1
    COMPLETE = 2
    FAILED = 3


class OverwriteMode(Enum):
    """How the archive downloader treats files already present on disk."""

    ALWAYS = "always"
    IF_CHANGED = "if_changed"
    NEVER = "never"


def _strip_leading_separators(value: str) -> str:
    return value.lstrip("\\/")


@dataclass(frozen=True)
class CacheFileEntry:
    """One requested-or-cached file tracked by the task store."""

    entry_id: int
    dataset_id: int = 0
    job: int = 0
    client_path: str = ""
    server_path: str = ""
    parent_path: str = ""
    dataset_folder: str = ""
    results_folder_name: str = ""
    filename: str = ""
    queued_at: datetime | None = None
    optional: bool = False
    state: CacheState = CacheState.QUEUED

    def __post_init__(self) -> None:
        object.__setattr__(self, "parent_path", _strip_leading_separators(self.parent_path))

    def root_path(self, perspective: Perspective) -> str:
        """Cache root for this entry as seen from the given perspective."""
        if perspective is Perspective.SERVER:
            return self.server_path
        return self.client_path

    def dataset_dir(self, perspective: Perspective) -> Path:
        """Directory the archive files for this entry's dataset are written to."""
        return _join(self.root_path(perspective), self.parent_path, self.dataset_folder)

    def target_path(self, perspective: Perspective) -> Path:
        """Full on-disk path of the cached file."""
        return self.path_under(self.root_path(perspective))

    def path_under(self, root: str) -> Path:
        return _join(
            root,
            self.parent_path,
            self.dataset_folder,
            self.results_folder_name,
            self.filename,
        )

    @property
    def relative_name(self) -> str:
        """Results folder and filename, for log messages."""
        if self.results_folder_name:
            return f"{self.results_folder_name}/{self.filename}"
        return self.filename


def _join(root: str, *parts: str) -> Path:
    path = Path(root)
    for part in parts:
        if part:
            path = path / part
    return path


@dataclass(frozen=True)
class CacheTask:
    """A leased unit of work: a task id plus the entries bound to it."""

    task_id: int
    entries: tuple[CacheFileEntry, ...] = ()

    @property
    def dataset_id(self) -> int:
        return self.entries[0].dataset_id if self.entries else 0


@dataclass(frozen=True)
class TaskLease:
    """Outcome of asking the task store for the next task."""

    task_available: bool
    task_id: int = 0
    message: str = ""


@dataclass(frozen=True)
class ArchivedFileRef:
    """Archive-side identity of one file revision."""

    file_id: int
    sub_dir_path: str
    filename: str
    size: int = 0
    sha256: str | None = None
    key: str = ""

    @property
    def relative_path(self) -> Path:
        if self.sub_dir_path:
            return Path(self.sub_dir_path) / self.filename
        return Path(self.filename)

    def placed_at(self, sub_dir_path: str, filename: str) -> "ArchivedFileRef":
        """Same revision, written under another relative path."""
        return replace(self, sub_dir_path=sub_dir_path, filename=filename)


@dataclass
class CompletionResult:
    """Outcome of processing one task, reported back to the task store."""

    success: bool = False
    completion_code: int = 0
    message: str = ""
    cached_entry_ids: set[int] = field(default_factory=set)

    @property
    def reported_code(self) -> int:
        """Code sent to the store; an unset code on failure becomes -1."""
        if self.success:
            return 0
        return self.completion_code or -1


@dataclass
class DownloadSummary:
    """Counts returned by an archive download call."""

    downloaded: int = 0
    skipped: int = 0
    failed: int = 0
    bytes_downloaded: int = 0
    errors: list[str] = field(default_factory=list)

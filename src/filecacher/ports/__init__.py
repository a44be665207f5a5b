"""Port interfaces for FileCacher."""

from .archive import ArchivePort
from .cache import CacheEntryPort
from .clock import ClockPort
from .disk import DiskSpacePort
from .hash import HashPort
from .logger import LoggerPort
from .metrics import MetricsPort
from .task_store import TaskStorePort

__all__ = [
    "ArchivePort",
    "CacheEntryPort",
    "ClockPort",
    "DiskSpacePort",
    "HashPort",
    "LoggerPort",
    "MetricsPort",
    "TaskStorePort",
]

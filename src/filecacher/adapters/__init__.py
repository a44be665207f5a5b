"""Adapters for FileCacher ports."""

from .clock import UtcClockAdapter
from .db_log import DatabaseLogHandler
from .disk import LocalDiskSpaceAdapter, NetworkShareSpaceAdapter, probe_for_path
from .hash import Sha256Adapter
from .logger import StdLoggerAdapter
from .metrics import LoggingMetricsAdapter, NoopMetricsAdapter
from .s3_archive import S3ArchiveAdapter
from .sql_store import SqlTaskStoreAdapter

__all__ = [
    "DatabaseLogHandler",
    "LocalDiskSpaceAdapter",
    "LoggingMetricsAdapter",
    "NetworkShareSpaceAdapter",
    "NoopMetricsAdapter",
    "S3ArchiveAdapter",
    "Sha256Adapter",
    "SqlTaskStoreAdapter",
    "StdLoggerAdapter",
    "UtcClockAdapter",
    "probe_for_path",
]

"""Centralized configuration for FileCacher."""

import os
import socket
from dataclasses import dataclass, field

from .errors import ConfigurationError
from .models import Perspective

DEFAULT_MINIMUM_FREE_SPACE_GB = 75
DEFAULT_DATABASE_URL = "sqlite:///filecacher.db"


def _int_from_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"Error converting {raw!r} to an integer for {name}") from e


@dataclass(slots=True)
class FileCacherConfig:
    """All FileCacher configuration in one place.

    Environment variables (all optional):
        FC_DATABASE_URL:         SQLAlchemy URL of the task store.
        FC_LOG_DB_URL:           SQLAlchemy URL for durable log entries. Unset keeps
                                 durable entries in the log file only.
        FC_MIN_FREE_SPACE_GB:    Free space floor for the cache drive. 0 disables eviction.
                                 Default 75.
        FC_SERVER:               Task server to contact. Empty selects server perspective.
        FC_LOG_LEVEL:            Logging level. Default "INFO".
        FC_LOG_DIR:              Directory for daily log files. Default "Logs".
        FC_METRICS:              Metrics backend: "noop" or "logging" (default).
        FC_ARCHIVE_BUCKET:       S3 bucket holding the archive. Default "archive".
        FC_ARCHIVE_PREFIX:       Key prefix of dataset folders. Default "datasets".
        FC_ARCHIVE_ENDPOINT_URL: S3 endpoint override.
        FC_RETRY_ATTEMPTS:       Attempts per task store call. Default 4.
        FC_CALL_TIMEOUT:         Per-call timeout in seconds. Default 20.
    """

    database_url: str = DEFAULT_DATABASE_URL
    log_db_url: str | None = field(default=None, repr=False)
    minimum_free_space_gb: int = DEFAULT_MINIMUM_FREE_SPACE_GB
    server_name: str = ""
    log_level: str = "INFO"
    log_dir: str = "Logs"
    metrics_type: str = "logging"
    archive_bucket: str = "archive"
    archive_prefix: str = "datasets"
    retry_attempts: int = 4
    call_timeout_seconds: int = 20
    preview: bool = False

    # Connection params (typically passed by CLI, not env vars)
    endpoint_url: str | None = field(default=None, repr=False)
    region: str | None = None
    profile: str | None = None

    @property
    def perspective(self) -> Perspective:
        return Perspective.CLIENT if self.server_name else Perspective.SERVER

    @property
    def task_server(self) -> str:
        """Server that owns the task queue; the local host in server perspective."""
        return self.server_name or socket.gethostname()

    @property
    def processor_name(self) -> str:
        return f"FileCacher_{socket.gethostname()}"

    @classmethod
    def from_env(
        cls,
        *,
        log_level: str | None = None,
        server_name: str | None = None,
        database_url: str | None = None,
        log_db_url: str | None = None,
        minimum_free_space_gb: int | None = None,
        preview: bool = False,
        endpoint_url: str | None = None,
        region: str | None = None,
        profile: str | None = None,
    ) -> "FileCacherConfig":
        """Build config from environment variables + explicit overrides."""
        if minimum_free_space_gb is None:
            minimum_free_space_gb = _int_from_env(
                "FC_MIN_FREE_SPACE_GB", DEFAULT_MINIMUM_FREE_SPACE_GB
            )

        return cls(
            database_url=database_url or os.environ.get("FC_DATABASE_URL", DEFAULT_DATABASE_URL),
            log_db_url=log_db_url or os.environ.get("FC_LOG_DB_URL") or None,
            minimum_free_space_gb=minimum_free_space_gb,
            server_name=(
                server_name if server_name is not None else os.environ.get("FC_SERVER", "")
            ).strip(),
            log_level=log_level or os.environ.get("FC_LOG_LEVEL", "INFO"),
            log_dir=os.environ.get("FC_LOG_DIR", "Logs"),
            metrics_type=os.environ.get("FC_METRICS", "logging"),
            archive_bucket=os.environ.get("FC_ARCHIVE_BUCKET", "archive"),
            archive_prefix=os.environ.get("FC_ARCHIVE_PREFIX", "datasets"),
            retry_attempts=_int_from_env("FC_RETRY_ATTEMPTS", 4),
            call_timeout_seconds=_int_from_env("FC_CALL_TIMEOUT", 20),
            preview=preview,
            endpoint_url=endpoint_url or os.environ.get("FC_ARCHIVE_ENDPOINT_URL") or None,
            region=region,
            profile=profile,
        )

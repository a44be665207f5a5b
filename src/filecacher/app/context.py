"""Process-wide context: builds adapters at start and releases them at exit."""

import socket
from collections.abc import Callable
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .. import __version__
from ..adapters import (
    DatabaseLogHandler,
    LoggingMetricsAdapter,
    NoopMetricsAdapter,
    S3ArchiveAdapter,
    SqlTaskStoreAdapter,
    StdLoggerAdapter,
    UtcClockAdapter,
    probe_for_path,
)
from ..core import ConfigurationError, FileCacherConfig
from ..core.evictor import Evictor
from ..core.processor import TaskProcessor
from ..core.runner import TaskRunner
from ..ports import ArchivePort, DiskSpacePort, MetricsPort

METRICS_TYPES = ("logging", "noop")


class AppContext:
    """Explicitly constructed replacement for global loggers and connections.

    Usage::

        with AppContext(config) as app:
            result = app.create_runner().start(preview=config.preview)
    """

    def __init__(
        self,
        config: FileCacherConfig,
        archive: ArchivePort | None = None,
        output: Callable[[str], None] = print,
        console: bool = True,
    ):
        self.config = config
        self.output = output
        self.console = console
        self._archive = archive
        self._log_engine: Engine | None = None

    def __enter__(self) -> "AppContext":
        config = self.config
        if config.metrics_type not in METRICS_TYPES:
            raise ConfigurationError(
                f"Unknown metrics type {config.metrics_type!r}; expected one of {METRICS_TYPES}"
            )

        durable_handler, log_db_error = self._create_durable_handler()
        self.logger = StdLoggerAdapter(
            level=config.log_level,
            log_dir=Path(config.log_dir) if config.log_dir else None,
            durable_handler=durable_handler,
            console=self.console,
        )
        self.logger.info(f"=== Started FileCacher v{__version__} ===")
        if log_db_error:
            self.logger.warning(f"Durable log database unavailable: {log_db_error}")

        self.metrics: MetricsPort = (
            NoopMetricsAdapter()
            if config.metrics_type == "noop"
            else LoggingMetricsAdapter(self.logger)
        )
        self.clock = UtcClockAdapter()
        try:
            self.store = SqlTaskStoreAdapter.from_url(
                config.database_url,
                timeout_seconds=config.call_timeout_seconds,
                retry_attempts=config.retry_attempts,
                logger=self.logger,
            )
            self.archive: ArchivePort = self._archive or S3ArchiveAdapter.from_config(
                config.archive_bucket,
                config.archive_prefix,
                endpoint_url=config.endpoint_url,
                region=config.region,
                profile=config.profile,
                logger=self.logger,
            )
        except Exception:
            self.close()
            raise
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _create_durable_handler(self) -> tuple[DatabaseLogHandler | None, str]:
        if not self.config.log_db_url:
            return None, ""
        self._log_engine = create_engine(self.config.log_db_url)
        handler = DatabaseLogHandler(
            self._log_engine, posted_by=f"FileCacher: {socket.gethostname()}"
        )
        try:
            handler.create_table()
        except SQLAlchemyError as e:
            return None, str(e)
        return handler, ""

    def probe_for_path(self, path: str) -> DiskSpacePort:
        return probe_for_path(path, self.logger)

    def create_runner(self) -> TaskRunner:
        """Wire the evictor, processor and runner for this process."""
        config = self.config
        evictor = Evictor(
            store=self.store,
            logger=self.logger,
            metrics=self.metrics,
            clock=self.clock,
            probe_for_path=self.probe_for_path,
            perspective=config.perspective,
            server_name=config.task_server,
        )
        processor = TaskProcessor(
            store=self.store,
            archive=self.archive,
            logger=self.logger,
            metrics=self.metrics,
            clock=self.clock,
            perspective=config.perspective,
            server_name=config.task_server,
        )
        return TaskRunner(
            task_store=self.store,
            cache_store=self.store,
            evictor=evictor,
            processor=processor,
            logger=self.logger,
            metrics=self.metrics,
            clock=self.clock,
            processor_name=config.processor_name,
            perspective=config.perspective,
            server_name=config.task_server,
            minimum_free_space_gb=config.minimum_free_space_gb,
            output=self.output,
        )

    def close(self) -> None:
        store = getattr(self, "store", None)
        if store is not None:
            store.dispose()
        self.logger.close()
        if self._log_engine is not None:
            self._log_engine.dispose()
            self._log_engine = None

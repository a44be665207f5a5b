"""Standard library logging adapter."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

LOG_FORMAT = "%(asctime)s\t%(levelname)s\t%(message)s"


def is_durable(record: logging.LogRecord) -> bool:
    return bool(getattr(record, "durable", False))


class StdLoggerAdapter:
    """LoggerPort backed by the ``logging`` module.

    Records go to the console and, when ``log_dir`` is set, to a daily log
    file. Records logged with ``durable=True`` are additionally passed to
    ``durable_handler`` (typically a DatabaseLogHandler).
    """

    def __init__(
        self,
        name: str = "filecacher",
        level: str = "INFO",
        log_dir: Path | None = None,
        durable_handler: logging.Handler | None = None,
        console: bool = True,
    ):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level.upper())
        self._handlers: list[logging.Handler] = []

        formatter = logging.Formatter(LOG_FORMAT)
        if console:
            self._add_handler(logging.StreamHandler(sys.stderr), formatter)

        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file = log_dir / f"FileCacher_{datetime.now():%Y-%m-%d}.txt"
            self.log_file: Path | None = log_file
            self._add_handler(logging.FileHandler(log_file, encoding="utf-8"), formatter)
        else:
            self.log_file = None

        if durable_handler is not None:
            durable_handler.addFilter(is_durable)
            self._add_handler(durable_handler, formatter)

    def _add_handler(self, handler: logging.Handler, formatter: logging.Formatter) -> None:
        handler.setFormatter(formatter)
        self.logger.addHandler(handler)
        self._handlers.append(handler)

    def _log(
        self,
        level: int,
        message: str,
        durable: bool = False,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        if kwargs:
            fields = " ".join(f"{key}={value}" for key, value in kwargs.items())
            message = f"{message} [{fields}]"
        self.logger.log(level, message, exc_info=exc_info, extra={"durable": durable})

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def log_operation(
        self,
        op: str,
        durations: dict[str, float] | None = None,
        **kwargs: Any,
    ) -> None:
        if durations:
            kwargs.update({f"{name}_s": f"{value:.3f}" for name, value in durations.items()})
        self.debug(f"Operation {op} complete", **kwargs)

    def close(self) -> None:
        """Flush and detach every handler this adapter added."""
        for handler in self._handlers:
            handler.flush()
            handler.close()
            self.logger.removeHandler(handler)
        self._handlers.clear()

"""Durable log sink backed by a database table."""

import logging
from datetime import datetime

from sqlalchemy import insert
from sqlalchemy.engine import Engine

from .schema import log_entries

MAX_MESSAGE_LENGTH = 4000


class DatabaseLogHandler(logging.Handler):
    """Insert log records into ``t_log_entries``."""

    def __init__(self, engine: Engine, posted_by: str, level: int = logging.INFO):
        super().__init__(level)
        self.engine = engine
        self.posted_by = posted_by

    def create_table(self) -> None:
        log_entries.create(self.engine, checkfirst=True)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            if record.exc_info:
                message = f"{message}\n{logging.Formatter().formatException(record.exc_info)}"
            with self.engine.begin() as conn:
                conn.execute(
                    insert(log_entries).values(
                        posted_by=self.posted_by,
                        posting_time=datetime.fromtimestamp(record.created),
                        type=record.levelname,
                        message=message[:MAX_MESSAGE_LENGTH],
                    )
                )
        except Exception:
            self.handleError(record)

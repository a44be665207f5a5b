"""Logger port interface."""

from typing import Any, Protocol


class LoggerPort(Protocol):
    """Port for logging operations.

    Passing ``durable=True`` escalates the record to the durable log sink.
    """

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error message."""
        ...

    def log_operation(
        self,
        op: str,
        durations: dict[str, float] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log a completed operation with its timing."""
        ...

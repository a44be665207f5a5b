"""Metrics adapters."""

from ..ports.logger import LoggerPort


class NoopMetricsAdapter:
    """Discards all metrics."""

    def increment(self, name: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        pass

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        pass

    def timing(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        pass


class LoggingMetricsAdapter:
    """Writes metrics to the debug log."""

    def __init__(self, logger: LoggerPort):
        self.logger = logger

    def increment(self, name: str, value: int = 1, tags: dict[str, str] | None = None) -> None:
        self.logger.debug(f"metric {name} +{value}", **(tags or {}))

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.logger.debug(f"metric {name} = {value}", **(tags or {}))

    def timing(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.logger.debug(f"metric {name} {value:.3f}s", **(tags or {}))

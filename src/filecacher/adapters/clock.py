"""Clock adapters."""

from datetime import UTC, datetime


class UtcClockAdapter:
    """System clock; UTC for durations, local time for wall-clock checks."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def local_now(self) -> datetime:
        return datetime.now()

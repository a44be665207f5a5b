"""Rate limit for escalating records to the durable log."""

DEFAULT_DURABLE_LOG_LIMIT = 50


class DurableLogBudget:
    """Allow at most ``limit`` durable log escalations.

    A fresh budget is created for each deletion batch and each task.
    """

    def __init__(self, limit: int = DEFAULT_DURABLE_LOG_LIMIT):
        self.limit = limit
        self.used = 0

    def take(self) -> bool:
        if self.used >= self.limit:
            return False
        self.used += 1
        return True

"""Task store port interface."""

from collections.abc import Iterable
from typing import Protocol

from ..core.models import TaskLease


class TaskStorePort(Protocol):
    """Port for leasing cache tasks and reporting their outcome."""

    def request_task(self, processor_name: str) -> TaskLease:
        """Lease the next available task for this processor."""
        ...

    def set_task_complete(
        self,
        processor_name: str,
        task_id: int,
        completion_code: int,
        completion_message: str,
        cached_entry_ids: Iterable[int],
    ) -> str:
        """Report the outcome of a leased task; return the store's message."""
        ...

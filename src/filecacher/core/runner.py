"""Top-level task loop."""

from collections.abc import Callable
from dataclasses import dataclass

from ..ports.cache import CacheEntryPort
from ..ports.clock import ClockPort
from ..ports.logger import LoggerPort
from ..ports.metrics import MetricsPort
from ..ports.task_store import TaskStorePort
from .evictor import Evictor
from .models import Perspective
from .processor import TaskProcessor


@dataclass
class RunResult:
    """Outcome of one agent invocation."""

    success: bool = True
    message: str = ""
    tasks_processed: int = 0
    tasks_failed: int = 0

    def __bool__(self) -> bool:
        return self.success


class TaskRunner:
    """Lease tasks from the store and process them until none are left."""

    def __init__(
        self,
        task_store: TaskStorePort,
        cache_store: CacheEntryPort,
        evictor: Evictor,
        processor: TaskProcessor,
        logger: LoggerPort,
        metrics: MetricsPort,
        clock: ClockPort,
        processor_name: str,
        perspective: Perspective = Perspective.SERVER,
        server_name: str = "",
        minimum_free_space_gb: float = 0,
        output: Callable[[str], None] = print,
    ):
        self.task_store = task_store
        self.cache_store = cache_store
        self.evictor = evictor
        self.processor = processor
        self.logger = logger
        self.metrics = metrics
        self.clock = clock
        self.processor_name = processor_name
        self.perspective = perspective
        self.server_name = server_name
        self.minimum_free_space_gb = minimum_free_space_gb
        self.output = output

    def start(self, preview: bool = False) -> RunResult:
        """Run the agent once.

        Preview mode lists the next dataset's queued files without leasing,
        downloading or changing any state.
        """
        if preview:
            return self.preview_files_to_cache()

        if self.minimum_free_space_gb > 0:
            eviction = self.evictor.run(self.minimum_free_space_gb)
            if not eviction.success:
                return RunResult(success=False, message=eviction.message)

        result = RunResult()
        last_failure = ""
        while True:
            task_id = self.request_task()
            if task_id < 1:
                break

            completion = self.processor.process(task_id)
            result.tasks_processed += 1
            if not completion.success:
                result.tasks_failed += 1
                last_failure = completion.message or f"Task {task_id} failed"

            self.set_task_complete(
                task_id,
                completion.reported_code,
                completion.message,
                sorted(completion.cached_entry_ids),
            )

        if result.tasks_processed == 0:
            self.logger.debug(f"No tasks found for {self.server_name}")
        else:
            self.logger.info(
                "Finished processing cache tasks",
                processed=result.tasks_processed,
                failed=result.tasks_failed,
            )

        if result.tasks_failed:
            result.success = False
            result.message = (
                f"{result.tasks_failed} of {result.tasks_processed} cache tasks failed; "
                f"last error: {last_failure}"
            )
        self.metrics.gauge("filecacher.run.tasks_processed", result.tasks_processed)
        return result

    def request_task(self) -> int:
        """Lease the next task; 0 when none is available or the store call failed."""
        try:
            self.logger.debug(f"Requesting a cache task from {self.server_name}")
            lease = self.task_store.request_task(self.processor_name)
        except Exception as e:
            self.logger.error(
                f"Error requesting a cache task from {self.server_name}: {e}", durable=True
            )
            return 0

        if not lease.task_available:
            self.logger.debug("No cache task available", store_message=lease.message)
            return 0

        self.logger.info(f"Received cache task {lease.task_id} from {self.server_name}")
        return lease.task_id

    def set_task_complete(
        self,
        task_id: int,
        completion_code: int,
        completion_message: str,
        cached_entry_ids: list[int],
    ) -> None:
        try:
            self.task_store.set_task_complete(
                self.processor_name,
                task_id,
                completion_code,
                completion_message,
                cached_entry_ids,
            )
        except Exception as e:
            self.logger.error(
                f"Error setting cache task {task_id} complete on {self.server_name}: {e}",
                durable=True,
            )

    def preview_files_to_cache(self) -> RunResult:
        try:
            entries = self.cache_store.get_files_to_cache(0)
        except Exception as e:
            message = f"Error previewing files to cache for server {self.server_name}: {e}"
            self.logger.error(message, exc_info=True)
            return RunResult(success=False, message=message)

        if not entries:
            self.output(f"{self.server_name} does not have any files that need to be cached")
            return RunResult()

        first = entries[0]
        self.output(f"Files to cache for dataset {first.dataset_id}")
        self.output(f"Queued at: {first.queued_at}")
        self.output("Job\tFile_Path")
        for entry in entries:
            self.output(f"{entry.job}\t{entry.target_path(self.perspective)}")

        return RunResult()

"""Resolution and download of a single cache task."""

from ..ports.archive import ArchivePort
from ..ports.cache import CacheEntryPort
from ..ports.clock import ClockPort
from ..ports.logger import LoggerPort
from ..ports.metrics import MetricsPort
from .errors import ArchiveOfflineError
from .log_budget import DurableLogBudget
from .matcher import ArchiveFileMatcher
from .models import CacheTask, CompletionResult, OverwriteMode, Perspective

NO_QUEUED_FILES = 1
FILES_NOT_CACHED = 2


class TaskProcessor:
    """Match a task's requested files against the archive and download the matches."""

    def __init__(
        self,
        store: CacheEntryPort,
        archive: ArchivePort,
        logger: LoggerPort,
        metrics: MetricsPort,
        clock: ClockPort,
        perspective: Perspective = Perspective.SERVER,
        server_name: str = "",
        matcher: ArchiveFileMatcher | None = None,
        overwrite: OverwriteMode = OverwriteMode.IF_CHANGED,
    ):
        self.store = store
        self.archive = archive
        self.logger = logger
        self.metrics = metrics
        self.clock = clock
        self.perspective = perspective
        self.server_name = server_name
        self.matcher = matcher or ArchiveFileMatcher()
        self.overwrite = overwrite

    def process(self, task_id: int) -> CompletionResult:
        """Resolve and fetch one task's files.

        Completion codes:
            0: every required file was found and handed to the downloader
            1: the task has no queued files (the archive is not contacted)
            2: one or more required files are missing from the archive

        Unexpected errors leave the code unset; the caller reports them as -1.
        """
        result = CompletionResult()
        start_time = self.clock.now()

        try:
            self._process(task_id, result)
        except ArchiveOfflineError as e:
            result.success = False
            result.message = f"Archive is offline; unable to retrieve data: {e}"
            self.logger.warning(result.message, durable=True, task_id=task_id)
        except Exception as e:
            result.success = False
            result.message = f"Error processing task {task_id} for server {self.server_name}: {e}"
            self.logger.error(result.message, durable=True, exc_info=True)

        duration = (self.clock.now() - start_time).total_seconds()
        self.logger.log_operation(
            op="process_task",
            durations={"total": duration},
            task_id=task_id,
            success=result.success,
            completion_code=result.reported_code,
            cached=len(result.cached_entry_ids),
        )
        self.metrics.timing("filecacher.task.duration", duration)
        if result.success:
            self.metrics.increment("filecacher.task.completed")
        else:
            self.metrics.increment("filecacher.task.failed")
        return result

    def _process(self, task_id: int, result: CompletionResult) -> None:
        task = CacheTask(task_id, tuple(self.store.get_files_to_cache(task_id)))
        if not task.entries:
            result.completion_code = NO_QUEUED_FILES
            result.message = "Did not find any queued files for this task"
            return

        entries = task.entries
        first = entries[0]
        dataset_id = task.dataset_id
        available = self.archive.find_files_by_dataset_id(dataset_id)
        matched = self.matcher.match(entries, available)

        for entry in matched.skipped_optional:
            self.logger.info(
                f"Skipping optional file not found in the archive: {entry.relative_name}"
            )

        budget = DurableLogBudget()
        for entry in matched.unmatched_required:
            self.logger.error(
                f"Could not find file {entry.relative_name} in the archive for dataset {dataset_id}",
                durable=budget.take(),
            )

        result.cached_entry_ids = set(matched.matches)
        to_download = matched.files_to_download(entries)

        if to_download:
            target_dir = first.dataset_dir(self.perspective)
            try:
                summary = self.archive.download_files(to_download, target_dir, self.overwrite)
                self.logger.info(
                    f"Downloaded files for dataset {dataset_id}",
                    target=str(target_dir),
                    downloaded=summary.downloaded,
                    skipped=summary.skipped,
                    failed=summary.failed,
                )
            except Exception as e:
                # The match count below decides the task outcome
                self.logger.error(f"Exception from downloader: {e}", target=str(target_dir))

        if matched.all_required_matched:
            result.success = True
            return

        result.completion_code = FILES_NOT_CACHED
        result.message = (
            f"Unable to cache all of the requested files: {len(entries)} requested "
            f"vs. {len(matched.matches)} actually cached"
        )

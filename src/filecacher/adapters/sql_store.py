"""SQLAlchemy-backed task store and cache entry store."""

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import create_engine, delete, insert, select, update
from sqlalchemy.engine import Connection, Engine, RowMapping
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..core.errors import TaskStoreError
from ..core.models import CacheFileEntry, CacheState, TaskLease, TaskState
from ..ports.logger import LoggerPort
from .schema import cache_tasks, file_cache, metadata

T = TypeVar("T")


def _row_to_entry(row: RowMapping) -> CacheFileEntry:
    return CacheFileEntry(
        entry_id=row["entry_id"],
        dataset_id=row["dataset_id"] or 0,
        job=row["job"] or 0,
        client_path=row["client_path"] or "",
        server_path=row["server_path"] or "",
        parent_path=row["parent_path"] or "",
        dataset_folder=row["dataset_folder"] or "",
        results_folder_name=row["results_folder_name"] or "",
        filename=row["filename"] or "",
        queued_at=row["queued"],
        optional=bool(row["optional"]),
        state=CacheState(row["state"]),
    )


def _next_queued_dataset():
    """Dataset of the oldest queued entry not yet bound to a task."""
    return (
        select(file_cache.c.dataset_id)
        .where(file_cache.c.state == CacheState.QUEUED, file_cache.c.task_id.is_(None))
        .order_by(file_cache.c.queued, file_cache.c.entry_id)
        .limit(1)
    )


class SqlTaskStoreAdapter:
    """Task store and cache entry store over ``t_cache_tasks`` and ``t_file_cache``.

    Every call runs in its own transaction and is retried on transient
    database errors; the final failure surfaces as TaskStoreError.
    """

    def __init__(
        self,
        engine: Engine,
        retry_attempts: int = 4,
        retry_wait_seconds: float = 1.0,
        logger: LoggerPort | None = None,
    ):
        self.engine = engine
        self.retry_attempts = max(retry_attempts, 1)
        self.retry_wait_seconds = retry_wait_seconds
        self.logger = logger

    @classmethod
    def from_url(
        cls,
        url: str,
        timeout_seconds: int = 20,
        **kwargs: Any,
    ) -> "SqlTaskStoreAdapter":
        if url.startswith("sqlite"):
            connect_args: dict[str, Any] = {"timeout": timeout_seconds}
            engine = create_engine(url, connect_args=connect_args)
        else:
            engine = create_engine(url, pool_pre_ping=True, pool_timeout=timeout_seconds)
        return cls(engine, **kwargs)

    def create_schema(self) -> None:
        metadata.create_all(self.engine, tables=[file_cache, cache_tasks])

    def dispose(self) -> None:
        self.engine.dispose()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        if self.logger and retry_state.outcome is not None:
            self.logger.warning(
                f"Task store call failed (attempt {retry_state.attempt_number} of "
                f"{self.retry_attempts}): {retry_state.outcome.exception()}"
            )

    def _call(self, name: str, fn: Callable[[Connection], T]) -> T:
        def run() -> T:
            with self.engine.begin() as conn:
                return fn(conn)

        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_fixed(self.retry_wait_seconds),
            retry=retry_if_exception_type((OperationalError, PoolTimeoutError)),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            return retrying(run)
        except SQLAlchemyError as e:
            raise TaskStoreError(f"{name} failed: {e}") from e

    # TaskStorePort

    def request_task(self, processor_name: str) -> TaskLease:
        def lease(conn: Connection) -> TaskLease:
            dataset_id = conn.execute(_next_queued_dataset()).scalar()
            if dataset_id is None:
                return TaskLease(task_available=False, message="No queued files")

            task_id = conn.execute(
                insert(cache_tasks).values(
                    processor=processor_name,
                    dataset_id=dataset_id,
                    state=TaskState.IN_PROGRESS,
                    started=datetime.now(),
                )
            ).inserted_primary_key[0]

            claimed = conn.execute(
                update(file_cache)
                .where(
                    file_cache.c.dataset_id == dataset_id,
                    file_cache.c.state == CacheState.QUEUED,
                    file_cache.c.task_id.is_(None),
                )
                .values(task_id=task_id, state=CacheState.IN_PROGRESS)
            ).rowcount

            if not claimed:
                conn.execute(delete(cache_tasks).where(cache_tasks.c.task_id == task_id))
                return TaskLease(
                    task_available=False,
                    message=f"Queued files for dataset {dataset_id} were claimed by another processor",
                )

            return TaskLease(
                task_available=True,
                task_id=task_id,
                message=f"Assigned {claimed} files for dataset {dataset_id}",
            )

        return self._call("request_task", lease)

    def set_task_complete(
        self,
        processor_name: str,
        task_id: int,
        completion_code: int,
        completion_message: str,
        cached_entry_ids: Iterable[int],
    ) -> str:
        cached = sorted({int(entry_id) for entry_id in cached_entry_ids})

        def complete(conn: Connection) -> str:
            found = conn.execute(
                select(cache_tasks.c.task_id).where(cache_tasks.c.task_id == task_id)
            ).first()
            if found is None:
                raise TaskStoreError(f"Cache task {task_id} not found")

            conn.execute(
                update(cache_tasks)
                .where(cache_tasks.c.task_id == task_id)
                .values(
                    processor=processor_name,
                    state=TaskState.COMPLETE if completion_code == 0 else TaskState.FAILED,
                    finished=datetime.now(),
                    completion_code=completion_code,
                    completion_message=(completion_message or "")[:255],
                )
            )

            cached_count = 0
            if cached:
                cached_count = conn.execute(
                    update(file_cache)
                    .where(
                        file_cache.c.task_id == task_id,
                        file_cache.c.entry_id.in_(cached),
                    )
                    .values(state=CacheState.CACHED)
                ).rowcount

            conn.execute(
                update(file_cache)
                .where(
                    file_cache.c.task_id == task_id,
                    file_cache.c.state == CacheState.IN_PROGRESS,
                )
                .values(state=CacheState.FAILED)
            )
            return f"Task {task_id} closed with code {completion_code}; {cached_count} files cached"

        return self._call("set_task_complete", complete)

    # CacheEntryPort

    def get_files_to_cache(self, task_id: int = 0) -> list[CacheFileEntry]:
        def query(conn: Connection) -> list[CacheFileEntry]:
            stmt = select(file_cache)
            if task_id > 0:
                stmt = stmt.where(file_cache.c.task_id == task_id)
            else:
                # Preview shows the dataset the next request_task would lease
                dataset_id = conn.execute(_next_queued_dataset()).scalar()
                if dataset_id is None:
                    return []
                stmt = stmt.where(
                    file_cache.c.state == CacheState.QUEUED,
                    file_cache.c.task_id.is_(None),
                    file_cache.c.dataset_id == dataset_id,
                )
            rows = conn.execute(stmt.order_by(file_cache.c.entry_id)).mappings()
            return [_row_to_entry(row) for row in rows]

        return self._call("get_files_to_cache", query)

    def get_oldest_cached_files(self, max_count: int) -> list[CacheFileEntry]:
        def query(conn: Connection) -> list[CacheFileEntry]:
            rows = conn.execute(
                select(file_cache)
                .where(file_cache.c.state == CacheState.CACHED)
                .order_by(file_cache.c.queued, file_cache.c.entry_id)
                .limit(max_count)
            ).mappings()
            return [_row_to_entry(row) for row in rows]

        return self._call("get_oldest_cached_files", query)

    def mark_purged(self, entry_ids: Iterable[int]) -> int:
        ids = sorted({int(entry_id) for entry_id in entry_ids})
        if not ids:
            return 0

        def purge(conn: Connection) -> int:
            return conn.execute(
                update(file_cache)
                .where(
                    file_cache.c.entry_id.in_(ids),
                    file_cache.c.state != CacheState.PURGED,
                )
                .values(state=CacheState.PURGED)
            ).rowcount

        return self._call("mark_purged", purge)

    # Queue maintenance

    def queue_file(
        self,
        dataset_id: int,
        filename: str,
        server_path: str,
        client_path: str = "",
        parent_path: str = "",
        dataset_folder: str = "",
        results_folder_name: str = "",
        job: int = 0,
        optional: bool = False,
        queued: datetime | None = None,
        state: CacheState = CacheState.QUEUED,
    ) -> int:
        """Add a file request; returns the new entry id."""

        def add(conn: Connection) -> int:
            return conn.execute(
                insert(file_cache).values(
                    dataset_id=dataset_id,
                    job=job,
                    client_path=client_path,
                    server_path=server_path,
                    parent_path=parent_path,
                    dataset_folder=dataset_folder,
                    results_folder_name=results_folder_name,
                    filename=filename,
                    queued=queued or datetime.now(),
                    optional=optional,
                    state=state,
                )
            ).inserted_primary_key[0]

        return self._call("queue_file", add)

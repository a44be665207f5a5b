"""SQLAlchemy table definitions for the task store and the durable log."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

file_cache = Table(
    "t_file_cache",
    metadata,
    Column("entry_id", Integer, primary_key=True, autoincrement=True),
    Column("task_id", Integer, nullable=True),
    Column("dataset_id", Integer, nullable=False),
    Column("job", Integer, nullable=False, default=0),
    Column("client_path", String(255), nullable=False, default=""),
    Column("server_path", String(255), nullable=False, default=""),
    Column("parent_path", String(255), nullable=False, default=""),
    Column("dataset_folder", String(255), nullable=False, default=""),
    Column("results_folder_name", String(255), nullable=False, default=""),
    Column("filename", String(255), nullable=False),
    Column("queued", DateTime, nullable=False),
    Column("optional", Boolean, nullable=False, default=False),
    Column("state", Integer, nullable=False, default=1),
    Index("ix_file_cache_state_queued", "state", "queued"),
    Index("ix_file_cache_task", "task_id"),
)

cache_tasks = Table(
    "t_cache_tasks",
    metadata,
    Column("task_id", Integer, primary_key=True, autoincrement=True),
    Column("processor", String(128), nullable=False),
    Column("dataset_id", Integer, nullable=False),
    Column("state", Integer, nullable=False, default=1),
    Column("started", DateTime, nullable=False),
    Column("finished", DateTime, nullable=True),
    Column("completion_code", Integer, nullable=True),
    Column("completion_message", String(255), nullable=True),
)

log_entries = Table(
    "t_log_entries",
    metadata,
    Column("entry_id", Integer, primary_key=True, autoincrement=True),
    Column("posted_by", String(128), nullable=False),
    Column("posting_time", DateTime, nullable=False),
    Column("type", String(32), nullable=False),
    Column("message", Text, nullable=False),
)

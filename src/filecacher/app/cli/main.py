"""CLI main entry point."""

import json
import sys

import click
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError

from ...adapters import DatabaseLogHandler, SqlTaskStoreAdapter, UtcClockAdapter
from ...core import FileCacherConfig, FileCacherError, Perspective
from ...core.blackout import updates_are_pending
from ..context import AppContext

EXIT_SUCCESS = 0
EXIT_FAILURE = -1
EXIT_TASK_FAILURE = -3


def run_agent(config: FileCacherConfig) -> int:
    """Run one agent pass and map its outcome to a process exit code."""
    with AppContext(config, output=click.echo) as app:
        try:
            result = app.create_runner().start(preview=config.preview)
        except Exception as e:
            app.logger.error(f"Unhandled exception: {e}", durable=True, exc_info=True)
            click.echo(f"Error: {e}", err=True)
            return EXIT_FAILURE

        if result.success:
            return EXIT_SUCCESS

        app.logger.error(result.message or "FileCacher run failed")

    click.echo(f"Error: {result.message}", err=True)
    return EXIT_TASK_FAILURE if result.message else EXIT_FAILURE


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool) -> None:
    """FileCacher - Archive-to-disk file cache manager."""
    ctx.obj = {"log_level": "DEBUG" if debug else None}


@cli.command()
@click.argument("server", required=False)
@click.option("--local", is_flag=True, help="Process tasks for this host using server paths")
@click.option("--preview", is_flag=True, help="List the next files to cache and exit")
@click.option("--log-db", "log_db_url", help="SQLAlchemy URL for durable log entries")
@click.option(
    "--free-space",
    "free_space_gb",
    type=int,
    help="Minimum free space in GB (default: 75, 0 disables eviction)",
)
@click.option("--database-url", help="SQLAlchemy URL of the task store")
@click.option(
    "--ignore-update-window",
    is_flag=True,
    help="Run even while operating system updates are pending",
)
@click.pass_context
def run(
    ctx: click.Context,
    server: str | None,
    local: bool,
    preview: bool,
    log_db_url: str | None,
    free_space_gb: int | None,
    database_url: str | None,
    ignore_update_window: bool,
) -> None:
    """Free disk space, then cache the files queued for SERVER.

    Use --local instead of SERVER to process this host's own queue.
    """
    if not server and not local:
        click.echo(ctx.get_usage())
        click.echo("Error: Specify a server name or --local", err=True)
        sys.exit(EXIT_FAILURE)

    try:
        config = FileCacherConfig.from_env(
            log_level=ctx.obj["log_level"],
            server_name="" if local else server,
            database_url=database_url,
            log_db_url=log_db_url,
            minimum_free_space_gb=free_space_gb,
            preview=preview,
        )
    except FileCacherError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_FAILURE)

    if config.perspective is Perspective.CLIENT and not ignore_update_window:
        pending, message = updates_are_pending(UtcClockAdapter().local_now())
        if pending:
            click.echo(message)
            click.echo("Skipping this run until updates have been installed")
            sys.exit(EXIT_SUCCESS)

    try:
        exit_code = run_agent(config)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        exit_code = EXIT_FAILURE

    sys.exit(exit_code)


@cli.command("init-db")
@click.option("--database-url", help="SQLAlchemy URL of the task store")
@click.option("--log-db", "log_db_url", help="SQLAlchemy URL for durable log entries")
def init_db(database_url: str | None, log_db_url: str | None) -> None:
    """Create the task store tables (and the log table when --log-db is set)."""
    config = FileCacherConfig.from_env(database_url=database_url, log_db_url=log_db_url)
    store = SqlTaskStoreAdapter.from_url(config.database_url)
    try:
        store.create_schema()
        click.echo(f"Created cache tables in {store.engine.url.render_as_string()}")

        if config.log_db_url:
            log_engine = create_engine(config.log_db_url)
            try:
                DatabaseLogHandler(log_engine, posted_by="FileCacher").create_table()
            finally:
                log_engine.dispose()
            click.echo(f"Created log table in {log_engine.url.render_as_string()}")
    except SQLAlchemyError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_FAILURE)
    finally:
        store.dispose()


@cli.command()
@click.argument("dataset_id", type=int)
@click.argument("filename")
@click.option("--root", "server_path", required=True, help="Cache root as seen by the server")
@click.option("--client-root", "client_path", default="", help="Cache root as seen by clients")
@click.option("--parent", "parent_path", default="", help="Folder below the cache root")
@click.option("--dataset-folder", default="", help="Dataset folder name")
@click.option("--results-folder", "results_folder_name", default="", help="Archive subfolder")
@click.option("--job", type=int, default=0, help="Job number the file belongs to")
@click.option("--optional", is_flag=True, help="Do not fail the task if the file is missing")
@click.option("--database-url", help="SQLAlchemy URL of the task store")
def enqueue(
    dataset_id: int,
    filename: str,
    server_path: str,
    client_path: str,
    parent_path: str,
    dataset_folder: str,
    results_folder_name: str,
    job: int,
    optional: bool,
    database_url: str | None,
) -> None:
    """Queue FILENAME of DATASET_ID for caching."""
    config = FileCacherConfig.from_env(database_url=database_url)
    store = SqlTaskStoreAdapter.from_url(
        config.database_url, retry_attempts=config.retry_attempts
    )
    try:
        entry_id = store.queue_file(
            dataset_id,
            filename,
            server_path,
            client_path=client_path,
            parent_path=parent_path,
            dataset_folder=dataset_folder,
            results_folder_name=results_folder_name,
            job=job,
            optional=optional,
        )
    except FileCacherError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_FAILURE)
    finally:
        store.dispose()

    output = {
        "entry_id": entry_id,
        "dataset_id": dataset_id,
        "filename": filename,
        "optional": optional,
    }
    click.echo(json.dumps(output, indent=2))


def main() -> None:
    """Main entry point."""
    cli()

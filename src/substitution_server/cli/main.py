import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import typer
import uvicorn

from substitution_server.api import create_app
from substitution_server.config import get_settings
from substitution_server.database import init_db, save_substitution_json
from substitution_server.dto.models import Schoolday
from substitution_server.errors import SubstitutionError
from substitution_server.fetcher import SubstitutionPDFGetter
from substitution_server.logs.logger_setup import setup_logging
from substitution_server.parser import schedule_from_pdf
from substitution_server.scheduler import SubstitutionRefresher
from substitution_server.store import SubstitutionStore

logger = logging.getLogger("cli_logger")

app = typer.Typer()


@app.command()
def serve():
    """
    Starts the refresh loop and serves the cached schedules over HTTP.
    """
    setup_logging()
    settings = get_settings()

    audit_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="audit")
    if settings.AUDIT_ENABLED:
        init_db()
        store = SubstitutionStore(audit=save_substitution_json, executor=audit_executor)
    else:
        store = SubstitutionStore()

    getter = SubstitutionPDFGetter()
    refresher = SubstitutionRefresher(store, getter)
    refresher.start()

    try:
        uvicorn.run(create_app(store), host=settings.HOST, port=settings.PORT)
    finally:
        refresher.shutdown()
        audit_executor.shutdown(wait=False)
        getter.close()


@app.command()
def check(day: Schoolday):
    """
    Downloads and extracts the PDF of one day right away and prints the JSON.
    """
    setup_logging()
    logger.info(f"One-off check for {day}")
    getter = SubstitutionPDFGetter()
    try:
        schedule = schedule_from_pdf(getter.get_weekday_pdf(day))
    except SubstitutionError as exc:
        logger.error(str(exc))
        typer.echo(f"Failed: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        getter.close()

    typer.echo(schedule.to_json())


@app.command()
def parse(pdf_path: Path):
    """
    Extracts a substitution PDF from disk and prints the JSON.
    """
    setup_logging()
    if not pdf_path.is_file():
        typer.echo(f"No such file: {pdf_path}", err=True)
        raise typer.Exit(code=2)

    try:
        schedule = schedule_from_pdf(pdf_path.read_bytes())
    except SubstitutionError as exc:
        typer.echo(f"Failed: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(schedule.to_json())


@app.command()
def migrate():
    """
    Applies all Alembic migrations.
    """
    setup_logging()
    logger.info("Running Alembic migrations")
    subprocess.run(["alembic", "upgrade", "head"], check=True)
    logger.info("Migrations applied.")


if __name__ == "__main__":
    app()

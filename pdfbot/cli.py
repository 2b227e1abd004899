"""CLI interface for pdfbot."""

import functools
import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click

from .batch import BatchRunner
from .config import DEFAULT_CONFIG_FILE, Settings, load_settings
from .errors import PdfBotError
from .queue import JobQueue
from .renderer import ChromeRenderer
from .storage import Storage
from .storage_plugins import create_storage_plugin


class App:
    """Lazily builds settings and the queue for one CLI invocation."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self._settings: Optional[Settings] = None
        self._queue: Optional[JobQueue] = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = load_settings(self.config_path)
        return self._settings

    @property
    def queue(self) -> JobQueue:
        if self._queue is None:
            settings = self.settings
            self._queue = JobQueue(
                Storage(settings.storage_path),
                storage_plugin=create_storage_plugin(settings.storage, settings.storage_path),
                generation_policy=settings.generation_policy(),
                webhook_policy=settings.webhook_policy(),
                renderer_options=settings.generator,
            )
        return self._queue

    @property
    def webhook(self):
        return self.settings.webhook

    def renderer(self) -> ChromeRenderer:
        return ChromeRenderer(headless=self.settings.generator.get("headless", True))


def handle_errors(command):
    """Report fatal pdfbot errors and exit non-zero instead of crashing."""

    @functools.wraps(command)
    def wrapper(*args, **kwargs):
        try:
            return command(*args, **kwargs)
        except PdfBotError as e:
            click.echo(f"✗ Error: {e.message}", err=True)
            sys.exit(1)

    return wrapper


def format_date(value: Optional[datetime]) -> str:
    if not value:
        return ""
    return value.strftime("%Y-%m-%d %H:%M:%S")


@click.group()
@click.option("-c", "--config", "config_path", default=None,
              help=f"Path to configuration file (default: ./{DEFAULT_CONFIG_FILE})")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_path: Optional[str], verbose: bool):
    """pdfbot - Queue URLs and turn them into PDFs"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    ctx.obj = App(config_path)


@cli.command()
@click.pass_obj
def install(app: App):
    """Create the storage folders and write a config file.

    Example:
        pdfbot install
    """
    config_path = Path(app.config_path or DEFAULT_CONFIG_FILE)
    if config_path.exists() and not click.confirm(
        "A config file already exists, are you sure you want to override?"
    ):
        return

    storage_path = click.prompt(
        "Enter a path for storage", default=os.path.join(os.getcwd(), "pdf-storage")
    )
    options = {"storage_path": storage_path}
    try:
        Storage(storage_path)
        config_path.write_text(json.dumps(options, indent=2))
    except (OSError, PdfBotError) as e:
        click.echo(f"✗ Installation failed: {e}", err=True)
        sys.exit(1)

    click.echo("✓ pdfbot was installed successfully.")
    click.echo(f"Config file is placed at {config_path}")


@cli.command()
@click.argument("url")
@click.option("-m", "--meta", default="{}", help="JSON string with meta data")
@click.pass_obj
@handle_errors
def push(app: App, url: str, meta: str):
    """Push a new job to the queue.

    Example:
        pdfbot push https://example.com --meta '{"id": 1}'
    """
    try:
        meta_data = json.loads(meta)
    except json.JSONDecodeError as e:
        click.echo(f"✗ Invalid JSON: {e}", err=True)
        sys.exit(1)

    result = app.queue.add_to_queue(url, meta_data)
    if not result.ok:
        click.echo(f"✗ Could not push to queue: {result.message}", err=True)
        sys.exit(1)
    click.echo(f"✓ Job {result.value.id} queued")


def _process(app: App, job) -> None:
    result = app.queue.process_job(app.renderer(), job, app.webhook)
    if not result.ok:
        click.echo(f"✗ {result.message}", err=True)
        sys.exit(1)
    click.echo(f"✓ Job {job.id} was processed")


@cli.command()
@click.argument("job_id")
@click.pass_obj
@handle_errors
def generate(app: App, job_id: str):
    """Generate the PDF for a job."""
    job = app.queue.get_by_id(job_id)
    if not job:
        click.echo("✗ Job not found", err=True)
        sys.exit(1)
    _process(app, job)


@cli.command()
@click.pass_obj
@handle_errors
def shift(app: App):
    """Run the next job in the queue."""
    job = app.queue.get_next()
    if job:
        _process(app, job)


@cli.command(name="shift:all")
@click.pass_obj
@handle_errors
def shift_all(app: App):
    """Run all unfinished jobs in the queue."""
    runner = BatchRunner(app.queue, app.renderer(), app.webhook, app.settings.parallelism)
    report = runner.run()
    if report.skipped:
        click.echo("Queue is busy, another batch run is in progress")
        return
    click.echo(f"Processed {len(report.results)} jobs: "
               f"{len(report.succeeded)} succeeded, {len(report.failed)} failed")


@cli.command()
@click.option("--failed", is_flag=True, help="Show failed jobs")
@click.option("--completed", is_flag=True, help="Show completed jobs")
@click.option("-l", "--limit", type=click.IntRange(min=0), default=None, help="Maximum jobs to display")
@click.pass_obj
@handle_errors
def jobs(app: App, failed: bool, completed: bool, limit: Optional[int]):
    """List jobs, newest first.

    Example:
        pdfbot jobs --failed --limit 20
    """
    rows = app.queue.list_jobs(failed, limit, completed)
    if not rows:
        click.echo("No jobs found")
        return

    click.echo(f"\n{'ID':<38} {'URL':<40} {'Tries':<6} {'Created':<20} {'Completed':<20}")
    click.echo("-" * 128)
    for row in rows:
        click.echo(
            f"{row['id']:<38} {row['url'][:40]:<40} {row['tries']:<6} "
            f"{format_date(row['created_at']):<20} {format_date(row['completed_at']):<20}"
        )
    click.echo()


@cli.command()
@click.argument("job_id")
@click.pass_obj
@handle_errors
def ping(app: App, job_id: str):
    """Attempt to ping the webhook for a job."""
    job = app.queue.get_by_id(job_id)
    if not job:
        click.echo("✗ Job not found", err=True)
        sys.exit(1)
    _ping(app, job)


def _ping(app: App, job) -> None:
    result = app.queue.attempt_ping(job, app.webhook)
    if not result.ok:
        click.echo(f"✗ Ping failed: {result.message}", err=True)
        sys.exit(1)
    click.echo(f"✓ Ping succeeded: HTTP {result.value.status}")


@cli.command(name="ping:retry-failed")
@click.pass_obj
@handle_errors
def ping_retry_failed(app: App):
    """Retry the next job whose webhook has not been delivered."""
    job = app.queue.get_next_without_successful_ping()
    if job:
        _ping(app, job)


@cli.command()
@click.argument("job_id")
@click.pass_obj
@handle_errors
def pings(app: App, job_id: str):
    """List pings for a job."""
    rows = app.queue.list_pings(job_id)
    if rows is None:
        click.echo("✗ Job not found", err=True)
        sys.exit(1)
    if not rows:
        click.echo("No pings found")
        return

    click.echo(f"\n{'ID':<38} {'Method':<7} {'Status':<16} {'Sent at':<20} {'Response':<30}")
    click.echo("-" * 115)
    for row in rows:
        response = json.dumps(row["response"], default=str)[:30]
        click.echo(
            f"{row['id']:<38} {row['method']:<7} {str(row['status']):<16} "
            f"{format_date(row['sent_at']):<20} {response:<30}"
        )
    click.echo()


@cli.command()
@click.option("--failed", is_flag=True, help="Also remove failed jobs")
@click.option("--new", is_flag=True, help="Also remove new jobs")
@click.pass_obj
@handle_errors
def purge(app: App, failed: bool, new: bool):
    """Remove completed jobs from the queue."""
    removed = app.queue.purge(failed, new)
    click.echo(f"✓ The queue was purged ({len(removed)} jobs removed)")


if __name__ == "__main__":
    cli()

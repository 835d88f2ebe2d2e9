# app/cli.py
import json

import click
from flask import current_app

from jobs.lifecycle_job import schedule_lifecycle_job
from services.scheduler_service import run_lifecycle_pass


@click.command("run-lifecycle")
def run_lifecycle():
    """Run one booking lifecycle pass now."""
    summary = run_lifecycle_pass()
    click.echo(json.dumps(summary.to_dict(), indent=2))


@click.command("schedule-lifecycle")
def schedule_lifecycle():
    """Register the recurring lifecycle job with rq-scheduler."""
    scheduler = current_app.extensions.get("rq_scheduler")
    if scheduler is None:
        click.echo("REDIS_URL is not configured; nothing to schedule"); return
    job = schedule_lifecycle_job(scheduler, current_app.config)
    click.echo(f"Scheduled {job.id}")


def register_cli(app):
    app.cli.add_command(run_lifecycle)
    app.cli.add_command(schedule_lifecycle)

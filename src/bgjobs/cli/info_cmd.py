"""CLI commands for inspecting the installation.

Usage:
    bgjobs processors
    bgjobs config
    bgjobs config --format json
"""

from __future__ import annotations

import typer

processors_app = typer.Typer(help="List built-in job processors")
config_app = typer.Typer(help="Show effective settings")


@processors_app.callback(invoke_without_command=True)
def processors() -> None:
    """List the built-in job types and their default schedules."""
    from rich.console import Console

    from bgjobs.jobs import BUILTIN_PROCESSORS, JobQueue, JobScheduler, QueueConfig
    from bgjobs.jobs.scheduler import add_default_schedules

    console = Console()

    # Throwaway engine, only used to resolve the default schedules
    scheduler = JobScheduler(JobQueue(QueueConfig()))
    scheduled = {job.job_type: job.cron for job in add_default_schedules(scheduler)}

    console.print(f"[bold]Built-in processors ({len(BUILTIN_PROCESSORS)}):[/bold]")
    for job_type in BUILTIN_PROCESSORS:
        cron = scheduled.get(job_type)
        suffix = f"  [blue]({cron})[/blue]" if cron else ""
        console.print(f"  {job_type}{suffix}")


@config_app.callback(invoke_without_command=True)
def config(
    output_format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: text, json",
    ),
) -> None:
    """Print the settings resolved from the environment and .env file."""
    import orjson
    from rich.console import Console

    from bgjobs.config import settings

    console = Console()
    values = settings.model_dump(mode="json")

    if output_format == "json":
        typer.echo(orjson.dumps(values, option=orjson.OPT_INDENT_2).decode())
        return
    if output_format != "text":
        console.print(f"[red]Unknown format:[/red] {output_format}")
        raise typer.Exit(code=1)

    for key, value in values.items():
        console.print(f"  [bold]{key}[/bold] = {value}")

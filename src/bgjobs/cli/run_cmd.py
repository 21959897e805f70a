"""CLI command for running the job engine.

Usage:
    bgjobs run
    bgjobs run --max-concurrency 10 --console
    bgjobs run --metrics-port 9100 --no-schedules
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import signal

import typer

app = typer.Typer(help="Run the job engine")

logger = logging.getLogger("bgjobs.cli")


@app.callback(invoke_without_command=True)
def run(
    max_concurrency: int | None = typer.Option(
        None,
        "--max-concurrency",
        "-c",
        min=1,
        help="Concurrent jobs (default from BGJOBS_MAX_CONCURRENCY)",
    ),
    schedules: bool = typer.Option(
        True,
        "--schedules/--no-schedules",
        help="Enable/disable the default recurring jobs",
    ),
    metrics_interval: float = typer.Option(
        60.0,
        "--metrics-interval",
        help="Seconds between queue metrics log lines",
    ),
    metrics_port: int = typer.Option(
        0,
        "--metrics-port",
        help="Serve Prometheus metrics on this port (0 disables)",
    ),
    drain: bool = typer.Option(
        True,
        "--drain/--no-drain",
        help="Wait for in-flight jobs on shutdown",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error",
    ),
    console: bool = typer.Option(
        False,
        "--console",
        help="Human-readable logs instead of JSON",
    ),
) -> None:
    """Run the job engine with the built-in processors.

    Runs until interrupted with SIGINT or SIGTERM.
    """
    from bgjobs.config import settings
    from bgjobs.observability import configure_logging, setup_tracing

    configure_logging(
        json_format=settings.log_json and not console,
        level=log_level or settings.log_level,
    )
    setup_tracing(settings)

    if metrics_port:
        from prometheus_client import start_http_server

        from bgjobs.observability import get_metrics

        get_metrics()
        start_http_server(metrics_port)
        logger.info(f"Prometheus metrics served on port {metrics_port}")

    asyncio.run(
        _serve(
            max_concurrency=max_concurrency,
            schedules=schedules,
            metrics_interval=metrics_interval,
            drain=drain,
        )
    )


async def _serve(
    max_concurrency: int | None,
    schedules: bool,
    metrics_interval: float,
    drain: bool,
) -> None:
    from bgjobs.jobs import (
        JobQueue,
        JobScheduler,
        ProcessorServices,
        QueueConfig,
        add_default_schedules,
        log_notifications,
        register_builtin_processors,
    )

    config = QueueConfig.from_settings()
    if max_concurrency is not None:
        config = dataclasses.replace(config, max_concurrency=max_concurrency)

    queue = JobQueue(config)
    register_builtin_processors(queue, ProcessorServices.in_memory())
    queue.subscribe(log_notifications)

    scheduler = JobScheduler(queue)
    if schedules:
        add_default_schedules(scheduler)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    async with queue:
        await scheduler.start()
        try:
            while not stop_event.is_set():
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=metrics_interval)
                except TimeoutError:
                    logger.info("Queue metrics", extra=queue.get_metrics().to_dict())
        finally:
            logger.info("Shutting down job engine")
            await scheduler.stop()
            await queue.stop(drain=drain)

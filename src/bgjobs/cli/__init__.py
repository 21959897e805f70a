"""CLI commands for bgjobs.

Provides command-line interface using Typer:
- bgjobs run: Run the job engine with built-in processors
- bgjobs processors: List built-in job types
- bgjobs config: Show effective settings

Usage:
    bgjobs --help
    bgjobs run --max-concurrency 10
    bgjobs config --format json
"""

import typer

from bgjobs.cli.info_cmd import config_app, processors_app
from bgjobs.cli.run_cmd import app as run_app

# Main CLI application
app = typer.Typer(
    name="bgjobs",
    help="bgjobs: in-process background job engine",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(run_app, name="run")
app.add_typer(processors_app, name="processors")
app.add_typer(config_app, name="config")


@app.callback()
def callback() -> None:
    """bgjobs: in-process background job engine."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()

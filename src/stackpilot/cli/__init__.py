"""
stackpilot CLI.

Commands:
- deploy / delete: change set driven stack deployment and guarded removal
- describe changeset: inspect an existing change set
- exports, resources, dependencies, drift: read-only inspection
"""

from __future__ import annotations

import logging
import platform
from pathlib import Path
from typing import Annotated

import typer

from stackpilot import get_version
from stackpilot.logging import setup_logging

from .common import AppContext, OutputFormat, console
from .deploy import delete_command, deploy_command
from .describe import describe_app
from .inspection import (
    dependencies_command,
    drift_command,
    exports_command,
    report_command,
    resources_command,
)

app = typer.Typer(
    help="""stackpilot - deploy and inspect CloudFormation stacks

Deployments always go through a change set, so you see what will change
(and what will be replaced) before anything happens.
""",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Display version and environment information."""
    if value:
        console.print(f"stackpilot {get_version()}")
        console.print(f"Python {platform.python_version()} ({platform.python_implementation()})")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Annotated[
        Path | None, typer.Option("--config", help="Path to stackpilot.toml")
    ] = None,
    region: Annotated[str | None, typer.Option("--region", "-r", help="AWS region")] = None,
    profile: Annotated[str | None, typer.Option("--profile", help="AWS profile")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
    output: Annotated[
        OutputFormat, typer.Option("--output", "-o", help="Output format")
    ] = OutputFormat.TABLE,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and environment information",
        ),
    ] = None,
) -> None:
    """stackpilot main callback for global options."""
    app_context = AppContext(
        config_path=config,
        region=region,
        profile=profile,
        verbose=verbose,
        output=output,
    )
    ctx.obj = app_context
    setup_logging(
        level=logging.DEBUG if verbose else logging.WARNING,
        log_file=app_context.settings.logging.file,
    )


app.command(name="deploy")(deploy_command)
app.command(name="delete")(delete_command)
app.command(name="exports")(exports_command)
app.command(name="resources")(resources_command)
app.command(name="dependencies")(dependencies_command)
app.command(name="drift")(drift_command)
app.command(name="report")(report_command)
app.add_typer(describe_app, name="describe")


def main(argv: list[str] | None = None) -> None:
    app(args=argv, standalone_mode=True)


__all__ = ["app", "main", "version_callback"]

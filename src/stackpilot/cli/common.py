"""
Shared CLI plumbing: global options, settings, the CloudFormation port and
error reporting.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console

from stackpilot import uploads
from stackpilot.aws_config import AWSConfig, get_aioboto3_session, get_aws_config
from stackpilot.config import Settings, load_settings
from stackpilot.engine.boto_port import AioBotoCloudFormation
from stackpilot.engine.errors import StackpilotError
from stackpilot.engine.port import CloudFormationPort
from stackpilot.files import LoadedFile

console = Console()
err_console = Console(stderr=True)


class OutputFormat(StrEnum):
    TABLE = "table"
    JSON = "json"


@dataclass
class AppContext:
    """Global options collected by the main callback."""

    config_path: Path | None = None
    region: str | None = None
    profile: str | None = None
    verbose: bool = False
    output: OutputFormat = OutputFormat.TABLE
    _settings: Settings | None = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            try:
                self._settings = load_settings(self.config_path)
            except StackpilotError as e:
                fail(e)
        return self._settings

    @property
    def aws(self) -> AWSConfig:
        return get_aws_config().with_overrides(
            self.settings.aws, region=self.region, profile=self.profile
        )

    @property
    def as_json(self) -> bool:
        return self.output == OutputFormat.JSON


def get_context(ctx: typer.Context) -> AppContext:
    if not isinstance(ctx.obj, AppContext):
        ctx.obj = AppContext()
    return ctx.obj


@asynccontextmanager
async def open_port(app_context: AppContext) -> AsyncIterator[CloudFormationPort]:
    """Open the CloudFormation client for the lifetime of one command."""
    aws = app_context.aws
    session = get_aioboto3_session(aws)
    async with AioBotoCloudFormation(session, aws.region, aws.endpoint_url) as port:
        yield port


def fail(error: StackpilotError | str) -> NoReturn:
    """Print an error and exit with status 1."""
    if isinstance(error, StackpilotError):
        err_console.print(f"[red]{error.kind}: {error}[/red]")
    else:
        err_console.print(f"[red]{error}[/red]")
    raise typer.Exit(1)


def print_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def split_list(values: str | None) -> list[str]:
    """Split a comma separated option value."""
    if not values:
        return []
    return [value.strip() for value in values.split(",") if value.strip()]


async def upload_template(app_context: AppContext, bucket: str, loaded: LoadedFile) -> str:
    """Upload a loaded template with the same AWS session the port uses."""
    aws = app_context.aws
    session = get_aioboto3_session(aws)
    return await uploads.upload_template(
        session, bucket, loaded.path, loaded.content, aws.region, aws.endpoint_url
    )

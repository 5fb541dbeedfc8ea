"""
Describe commands.
"""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from rich.panel import Panel

from stackpilot.engine.changesets import describe_change_set
from stackpilot.engine.errors import StackpilotError
from stackpilot.engine.models import ChangeSet
from stackpilot.engine.naming import changeset_console_url, parse_changeset_console_url

from . import common, render
from .common import console, fail

describe_app = typer.Typer(
    help="Describe stacks and change sets",
    no_args_is_help=True,
)


def change_set_summary(change_set: ChangeSet, region: str) -> dict:
    return {
        "name": change_set.name,
        "id": change_set.change_set_id,
        "stack_name": change_set.stack_name,
        "stack_id": change_set.stack_id,
        "status": change_set.status,
        "status_reason": change_set.status_reason,
        "execution_status": change_set.execution_status,
        "creation_time": change_set.creation_time,
        "url": changeset_console_url(region, change_set.stack_id, change_set.change_set_id),
        "changes": [
            {
                "action": change.action,
                "logical_id": change.logical_id,
                "resource_type": change.resource_type,
                "replacement": change.replacement,
                "physical_id": change.physical_id,
                "module": change.module,
                "danger": change.danger_details(),
            }
            for change in change_set.changes
        ],
    }


@describe_app.command(name="changeset")
def describe_changeset(
    ctx: typer.Context,
    stackname: Annotated[
        str | None, typer.Option("--stackname", "-n", help="Name of the stack")
    ] = None,
    changeset: Annotated[
        str | None, typer.Option("--changeset", "-c", help="Name of the change set")
    ] = None,
    url: Annotated[
        str | None, typer.Option("--url", "-u", help="Console URL of the change set")
    ] = None,
) -> None:
    """
    Show the contents of an existing change set.

    Example:
        stackpilot describe changeset --stackname my-vpc --changeset stackpilot-2024-01-15T10-30-45
    """
    app_context = common.get_context(ctx)
    region = app_context.aws.region

    if url:
        stack, name = parse_changeset_console_url(url, region)
        if not stack or not name:
            fail(f"could not find a stack and change set in '{url}'")
    elif stackname and changeset:
        stack, name = stackname, changeset
    else:
        fail("pass --stackname and --changeset, or --url")

    async def _describe() -> ChangeSet:
        async with common.open_port(app_context) as port:
            return await describe_change_set(
                port, stack, name, app_context.settings.deploy.retry_policy()
            )

    try:
        change_set = asyncio.run(_describe())
    except StackpilotError as e:
        fail(e)

    if app_context.as_json:
        common.print_json(change_set_summary(change_set, region))
        return

    lines = [
        f"Stack: [cyan]{change_set.stack_name}[/cyan]",
        f"Status: {change_set.status}",
        f"Execution status: {change_set.execution_status}",
    ]
    if change_set.status_reason:
        lines.append(f"Reason: {change_set.status_reason}")
    if change_set.creation_time:
        lines.append(f"Created: {change_set.creation_time.isoformat(timespec='seconds')}")
    console.print(Panel("\n".join(lines), title=change_set.name, expand=False))
    render.render_change_set(change_set)
    console.print(
        changeset_console_url(region, change_set.stack_id, change_set.change_set_id),
        soft_wrap=True,
    )

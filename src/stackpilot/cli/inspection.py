"""
Read-only inspection commands: exports, resources, dependencies, drift and
deployment reports.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from typing import Annotated, TypeVar

import typer

from stackpilot.engine.dependencies import stack_dependencies
from stackpilot.engine.drift import detect_drift
from stackpilot.engine.errors import StackpilotError
from stackpilot.engine.exports import list_exports
from stackpilot.engine.port import CloudFormationPort
from stackpilot.engine.report import deployment_report
from stackpilot.engine.resources import list_resources

from . import common, render
from .common import AppContext, fail

T = TypeVar("T")

StackPattern = Annotated[
    str | None,
    typer.Option("--stackname", "-n", help="Stack name; '*' works as a wildcard"),
]


def _run(app_context: AppContext, query: Callable[[CloudFormationPort], Awaitable[T]]) -> T:
    async def _query() -> T:
        async with common.open_port(app_context) as port:
            return await query(port)

    try:
        return asyncio.run(_query())
    except StackpilotError as e:
        fail(e)


def exports_command(
    ctx: typer.Context,
    stackname: StackPattern = None,
    export: Annotated[
        str | None, typer.Option("--export", "-e", help="Only show this export")
    ] = None,
) -> None:
    """
    List exports and the stacks importing them.
    """
    app_context = common.get_context(ctx)
    deploy = app_context.settings.deploy
    exports = _run(
        app_context,
        lambda port: list_exports(
            port,
            stackname,
            export,
            retry=deploy.retry_policy(),
            concurrency=deploy.fanout_concurrency,
        ),
    )
    if app_context.as_json:
        common.print_json([asdict(item) for item in exports])
    else:
        render.render_exports(exports)


def resources_command(ctx: typer.Context, stackname: StackPattern = None) -> None:
    """
    List the resources of one or more stacks.
    """
    app_context = common.get_context(ctx)
    retry = app_context.settings.deploy.retry_policy()
    resources = _run(app_context, lambda port: list_resources(port, stackname, retry))
    if app_context.as_json:
        common.print_json([asdict(item) for item in resources])
    else:
        render.render_resources(resources)


def dependencies_command(ctx: typer.Context, stackname: StackPattern = None) -> None:
    """
    Show which stacks depend on which through exports.
    """
    app_context = common.get_context(ctx)
    deploy = app_context.settings.deploy
    dependencies = _run(
        app_context,
        lambda port: stack_dependencies(
            port, stackname, deploy.retry_policy(), deploy.fanout_concurrency
        ),
    )
    if app_context.as_json:
        common.print_json([asdict(item) for item in dependencies])
    else:
        render.render_dependencies(dependencies)


def drift_command(
    ctx: typer.Context,
    stackname: Annotated[str, typer.Option("--stackname", "-n", help="Name of the stack")],
) -> None:
    """
    Run drift detection on a stack and show the drifted resources.
    """
    app_context = common.get_context(ctx)
    deploy = app_context.settings.deploy
    report = _run(
        app_context,
        lambda port: detect_drift(port, stackname, deploy.poll_settings(), deploy.retry_policy()),
    )
    if app_context.as_json:
        common.print_json(asdict(report))
    else:
        render.render_drift(report)


def report_command(
    ctx: typer.Context,
    stackname: StackPattern = None,
    latest: Annotated[
        bool, typer.Option("--latest", "-l", help="Only show the most recent deployment")
    ] = False,
) -> None:
    """
    Summarise past deployments of one or more stacks from their events.

    Example:
        stackpilot report --stackname my-vpc --latest
    """
    app_context = common.get_context(ctx)
    retry = app_context.settings.deploy.retry_policy()
    records = _run(
        app_context,
        lambda port: deployment_report(port, stackname, latest_only=latest, retry=retry),
    )
    if app_context.as_json:
        common.print_json([record.summary() for record in records])
    else:
        render.render_deployment_report(records)

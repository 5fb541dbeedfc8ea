"""
Deploy and delete commands.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated

import typer

from stackpilot.config import Settings
from stackpilot.engine.errors import ConfigurationError, StackpilotError
from stackpilot.engine.models import (
    ChangeSet,
    Deployment,
    Parameter,
    StackEvent,
    Tag,
    TemplateSource,
)
from stackpilot.engine.naming import changeset_console_url, default_change_set_name
from stackpilot.engine.orchestrator import (
    DeploymentOrchestrator,
    DeploymentResult,
    DeployState,
    RemovalResult,
)
from stackpilot.files import (
    LoadedFile,
    default_tags,
    load_deployment_file,
    load_parameter_files,
    load_tag_files,
    merge_parameters,
    merge_tags,
    read_template,
)
from stackpilot.logging import log_with_context
from stackpilot.prechecks import run_prechecks
from stackpilot.texts import ChangeSetText, FileText, StackText

from . import common, render
from .common import console, fail

logger = logging.getLogger(__name__)


# =============================================================================
# Building the deployment
# =============================================================================


def build_deployment(
    settings: Settings,
    stackname: str,
    template: str | None = None,
    template_url: str | None = None,
    use_previous_template: bool = False,
    parameters: str | None = None,
    tags: str | None = None,
    use_default_tags: bool = True,
    deployment_file: str | None = None,
    changeset_name: str | None = None,
    capabilities: list[str] | None = None,
    dry_run: bool = False,
    create_only: bool = False,
) -> tuple[Deployment, LoadedFile | None]:
    """
    Turn CLI options into a Deployment.

    Returns:
        The deployment and the loaded template file (None when the
        template isn't a local file)
    """
    template_path = template
    file_parameters: list[Parameter] = []
    file_tags: list[Tag] = []
    if deployment_file:
        bundle = load_deployment_file(deployment_file, settings)
        template_path = template_path or bundle.template_file_path or None
        file_parameters = [Parameter(key=k, value=v) for k, v in bundle.parameters.items()]
        file_tags = [Tag(key=k, value=v) for k, v in bundle.tags.items()]

    sources = [bool(template_path), bool(template_url), use_previous_template]
    if sum(sources) > 1:
        raise ConfigurationError(
            "use only one of --template, --template-url and --use-previous-template"
        )

    loaded = None
    if template_path:
        loaded = read_template(template_path, settings)
        source = TemplateSource.inline(loaded.content)
    elif template_url:
        source = TemplateSource.remote(template_url)
    elif use_previous_template:
        source = TemplateSource.previous()
    else:
        source = TemplateSource.none()

    tag_groups = []
    if use_default_tags:
        tag_groups.append(default_tags(settings, loaded.relative_path if loaded else None))
    tag_groups.append(file_tags)
    tag_groups.append(load_tag_files(common.split_list(tags), settings))

    deployment = Deployment(
        stack_name=stackname,
        change_set_name=changeset_name
        or default_change_set_name(
            settings.changeset.name_format, timezone=settings.changeset.timezone
        ),
        template=source,
        parameters=merge_parameters(
            file_parameters, load_parameter_files(common.split_list(parameters), settings)
        ),
        tags=merge_tags(*tag_groups),
        capabilities=list(capabilities or settings.deploy.capabilities),
        dry_run=dry_run,
        create_only=create_only,
    )
    return deployment, loaded


def run_deployment_prechecks(
    deployment: Deployment, settings: Settings, template_path: str, quiet: bool
) -> None:
    commands = settings.templates.prechecks
    if not commands:
        return
    if not quiet:
        console.print(FileText.PRECHECK_STARTED.format(count=len(commands)))
    report = run_prechecks(commands, template_path)
    deployment.prechecks_failed = report.failed
    if not report.failed:
        if not quiet:
            console.print(f"[green]{FileText.PRECHECK_SUCCESS}[/green]")
        return

    if settings.templates.stop_on_failed_prechecks:
        console.print(f"[red]{FileText.PRECHECK_FAILURE_STOP}[/red]")
    else:
        console.print(f"[yellow]{FileText.PRECHECK_FAILURE_CONTINUE}[/yellow]")
    for failure in report.failures:
        console.print(f"[bold]{failure.command}[/bold] ({failure.status})")
        if failure.output:
            console.print(failure.output, markup=False)


# =============================================================================
# Reporting
# =============================================================================


def report_deployment(result: DeploymentResult, region: str, quiet: bool) -> None:
    deployment = result.deployment
    change_set = result.change_set
    state = result.state

    if state == DeployState.DONE_NO_CHANGES:
        console.print(ChangeSetText.NO_CHANGES.format(stack=deployment.stack_name))
    elif state == DeployState.DECLINED:
        console.print(StackText.DECLINED)
    elif state == DeployState.DONE_SUCCESS and not result.executed:
        if deployment.dry_run:
            console.print(f"[green]{ChangeSetText.DRYRUN_SUCCESS}[/green]")
            if result.change_set_deleted:
                console.print(ChangeSetText.DRYRUN_DELETE)
        else:
            console.print(f"[green]{ChangeSetText.CREATED}[/green]")
            _print_console_url(change_set, region)
    elif state == DeployState.DONE_SUCCESS:
        console.print(f"[green]{StackText.SUCCESS}[/green]")
        if not quiet:
            if deployment.final_stack:
                render.render_outputs(deployment.final_stack)
            render.render_durations(result.durations)
    elif result.executed:
        console.print(f"[red]{StackText.FAILED}[/red]")
        render.render_failed_events(result.failed_events)
    elif change_set is not None and state == DeployState.DONE_FAILED:
        console.print(f"[red]{ChangeSetText.CREATION_FAILED}[/red]")
        _print_console_url(change_set, region)

    if result.stack_deleted:
        console.print(StackText.NEW_STACK_DELETED)
    if result.error is not None:
        common.err_console.print(f"[red]{result.error.kind}: {result.error}[/red]")


def _print_console_url(change_set: ChangeSet | None, region: str) -> None:
    if change_set is None or not change_set.change_set_id:
        return
    url = changeset_console_url(region, change_set.stack_id, change_set.change_set_id)
    console.print(f"{ChangeSetText.CONSOLE} {url}", soft_wrap=True)


# =============================================================================
# Commands
# =============================================================================


def deploy_command(
    ctx: typer.Context,
    stackname: Annotated[str, typer.Option("--stackname", "-n", help="Name of the stack")],
    template: Annotated[
        str | None, typer.Option("--template", "-f", help="Template file (looked up in the templates directory)")
    ] = None,
    template_url: Annotated[
        str | None, typer.Option("--template-url", help="URL of a template already in S3")
    ] = None,
    bucket: Annotated[
        str | None, typer.Option("--bucket", "-b", help="Upload the template to this S3 bucket first")
    ] = None,
    use_previous_template: Annotated[
        bool, typer.Option("--use-previous-template", help="Reuse the template of the existing stack")
    ] = False,
    parameters: Annotated[
        str | None, typer.Option("--parameters", "-p", help="Comma separated parameter files")
    ] = None,
    tags: Annotated[str | None, typer.Option("--tags", "-t", help="Comma separated tag files")] = None,
    use_default_tags: Annotated[
        bool, typer.Option("--default-tags/--no-default-tags", help="Add the configured default tags")
    ] = True,
    deployment_file: Annotated[
        str | None, typer.Option("--deployment-file", "-d", help="Deployment file with template, parameters and tags")
    ] = None,
    changeset_name: Annotated[
        str | None, typer.Option("--changeset-name", "-c", help="Name for the change set")
    ] = None,
    capability: Annotated[
        list[str] | None, typer.Option("--capability", help="Capability to acknowledge (repeatable)")
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Create the change set, show it, then delete it")
    ] = False,
    create_changeset: Annotated[
        bool, typer.Option("--create-changeset", help="Only create the change set, don't execute it")
    ] = False,
    non_interactive: Annotated[
        bool, typer.Option("--non-interactive", help="Don't ask for confirmation")
    ] = False,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Don't print events and tables")] = False,
    timeout: Annotated[
        float | None, typer.Option("--timeout", help="Give up after this many seconds")
    ] = None,
) -> None:
    """
    Deploy a CloudFormation stack through a change set.

    Example:
        stackpilot deploy --stackname my-vpc --template vpc --parameters vpc-prod
    """
    app_context = common.get_context(ctx)
    settings = app_context.settings

    try:
        deployment, loaded = build_deployment(
            settings,
            stackname,
            template=template,
            template_url=template_url,
            use_previous_template=use_previous_template,
            parameters=parameters,
            tags=tags,
            use_default_tags=use_default_tags,
            deployment_file=deployment_file,
            changeset_name=changeset_name,
            capabilities=capability,
            dry_run=dry_run,
            create_only=create_changeset,
        )
        if bucket and loaded is None:
            raise ConfigurationError(
                "--bucket needs a local template (--template or a deployment file)"
            )
        if loaded is not None:
            run_deployment_prechecks(deployment, settings, str(loaded.path), quiet)
    except StackpilotError as e:
        fail(e)

    region = app_context.aws.region
    shown: list[ChangeSet] = []

    def show(change_set: ChangeSet) -> None:
        if app_context.as_json or quiet or change_set in shown:
            return
        shown.append(change_set)
        if change_set.changes:
            console.print(f"[bold]{ChangeSetText.CHANGES}[/bold]")
            render.render_change_set(change_set)
            if change_set.dangerous_changes:
                console.print(f"[red]{ChangeSetText.DANGEROUS}[/red]")
        else:
            console.print(ChangeSetText.NO_RESOURCE_CHANGES)

    def say(message: str) -> None:
        if not app_context.as_json:
            console.print(message)

    async def approve(deployment: Deployment, change_set: ChangeSet) -> bool:
        show(change_set)
        if non_interactive:
            say(ChangeSetText.AUTO_DEPLOY)
            return True
        if await asyncio.to_thread(typer.confirm, ChangeSetText.DEPLOY_CONFIRM):
            say(ChangeSetText.WILL_DEPLOY)
            return True
        say(ChangeSetText.WILL_DELETE)
        return False

    async def confirm_cleanup(stack_name: str) -> bool:
        say(StackText.NEW_STACK_DELETE_INFO)
        if non_interactive:
            return True
        return await asyncio.to_thread(
            typer.confirm, StackText.NEW_STACK_DELETE_CONFIRM.format(stack=stack_name)
        )

    def on_event(event: StackEvent) -> None:
        if not quiet and not app_context.as_json:
            console.print(render.event_line(event))

    async def _deploy() -> DeploymentResult:
        refused = deployment.prechecks_failed and settings.templates.stop_on_failed_prechecks
        if bucket and loaded is not None and not refused:
            url = await common.upload_template(app_context, bucket, loaded)
            deployment.template = TemplateSource.remote(url)
            say(FileText.UPLOADED.format(url=url))
        async with common.open_port(app_context) as port:
            orchestrator = DeploymentOrchestrator(
                port,
                approve=approve,
                on_event=on_event,
                confirm_stack_cleanup=confirm_cleanup,
                poll=settings.deploy.poll_settings(),
                retry=settings.deploy.retry_policy(),
                event_poll_interval=settings.deploy.event_poll_interval,
                stop_on_failed_prechecks=settings.templates.stop_on_failed_prechecks,
                fanout_concurrency=settings.deploy.fanout_concurrency,
            )
            return await orchestrator.deploy(deployment, timeout=timeout)

    if not app_context.as_json and not quiet:
        render.render_deployment(deployment, region)

    try:
        result = asyncio.run(_deploy())
    except StackpilotError as e:
        fail(e)
    log_with_context(logger, logging.INFO, "Deployment finished", result.summary())

    if app_context.as_json:
        common.print_json(result.summary())
    else:
        if result.change_set is not None and result.state == DeployState.DONE_SUCCESS:
            show(result.change_set)
        report_deployment(result, region, quiet)

    if not result.success:
        raise typer.Exit(1)


def delete_command(
    ctx: typer.Context,
    stackname: Annotated[str, typer.Option("--stackname", "-n", help="Name of the stack")],
    non_interactive: Annotated[
        bool, typer.Option("--non-interactive", help="Don't ask for confirmation")
    ] = False,
    timeout: Annotated[
        float | None, typer.Option("--timeout", help="Give up after this many seconds")
    ] = None,
) -> None:
    """
    Delete a stack, refusing when other stacks import its exports.
    """
    app_context = common.get_context(ctx)
    settings = app_context.settings

    async def approve(stack_name: str) -> bool:
        if non_interactive:
            return True
        return await asyncio.to_thread(
            typer.confirm, StackText.DELETE_CONFIRM.format(stack=stack_name)
        )

    def on_event(event: StackEvent) -> None:
        if not app_context.as_json:
            console.print(render.event_line(event))

    async def _delete() -> RemovalResult:
        async with common.open_port(app_context) as port:
            orchestrator = DeploymentOrchestrator(
                port,
                on_event=on_event,
                poll=settings.deploy.poll_settings(),
                retry=settings.deploy.retry_policy(),
                event_poll_interval=settings.deploy.event_poll_interval,
                fanout_concurrency=settings.deploy.fanout_concurrency,
            )
            return await orchestrator.remove_stack(stackname, approve=approve, timeout=timeout)

    try:
        result = asyncio.run(_delete())
    except StackpilotError as e:
        fail(e)

    if app_context.as_json:
        common.print_json(
            {
                "stack_name": result.stack_name,
                "state": str(result.state),
                "importers": result.importers,
                "error": str(result.error) if result.error else None,
            }
        )
    elif result.state == DeployState.DONE_SUCCESS:
        console.print(f"[green]{StackText.DELETED.format(stack=result.stack_name)}[/green]")
    elif result.state == DeployState.DECLINED:
        console.print(StackText.DECLINED)

    if result.error is not None and not app_context.as_json:
        common.err_console.print(f"[red]{result.error.kind}: {result.error}[/red]")
    if not result.success:
        raise typer.Exit(1)

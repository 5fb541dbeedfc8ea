"""Rich rendering of engine results."""

from __future__ import annotations

from datetime import datetime, timedelta

from rich.panel import Panel
from rich.table import Table

from stackpilot.engine.changesets import summarize_changes
from stackpilot.engine.dependencies import StackDependency
from stackpilot.engine.drift import DriftReport
from stackpilot.engine.models import (
    ChangeSet,
    Deployment,
    Export,
    StackEvent,
    StackResource,
    StackSnapshot,
)
from stackpilot.engine.report import DeploymentRecord
from stackpilot.texts import StackText

from .common import console

ACTION_STYLES = {
    "Add": "green",
    "Modify": "yellow",
    "Remove": "red",
    "Import": "cyan",
}


def _time(value: datetime | None) -> str:
    return value.isoformat(timespec="seconds") if value else ""


def _duration(value: timedelta) -> str:
    seconds = int(value.total_seconds())
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes}m{seconds:02d}s" if minutes else f"{seconds}s"


def render_deployment(deployment: Deployment, region: str) -> None:
    lines = [
        f"Stack: [cyan]{deployment.stack_name}[/cyan]",
        f"Action: {'Create' if deployment.is_new else 'Update'}",
        f"Region: {region}",
        f"Change set: {deployment.change_set_name}",
    ]
    if deployment.dry_run:
        lines.append("[yellow]Dry run[/yellow]")
    console.print(Panel("\n".join(lines), title="Deployment", expand=False))


def render_change_set(change_set: ChangeSet) -> None:
    table = Table(title=f"Changes in {change_set.name}")
    table.add_column("Action")
    table.add_column("Replacement")
    table.add_column("Logical ID", style="cyan")
    table.add_column("Type")
    table.add_column("Physical ID")
    if change_set.has_module:
        table.add_column("Module")
    table.add_column("Danger", style="red")

    for change in change_set.changes:
        style = ACTION_STYLES.get(change.action, "")
        row = [
            f"[{style}]{change.action}[/{style}]" if style else change.action,
            change.replacement,
            change.logical_id,
            change.resource_type,
            change.physical_id,
        ]
        if change_set.has_module:
            row.append(change.module)
        row.append("\n".join(change.danger_details()))
        table.add_row(*row)

    console.print(table)
    render_change_summary(change_set)


def render_change_summary(change_set: ChangeSet) -> None:
    summary = summarize_changes(change_set)
    table = Table(title="Summary")
    table.add_column("Action")
    table.add_column("Count", justify="right")
    for action in ("Add", "Modify", "Remove", "Import"):
        if action in summary.by_action:
            table.add_row(action, str(summary.by_action[action]))
    table.add_row("Dangerous", str(summary.dangerous), style="red" if summary.dangerous else "")
    table.add_row("Total", str(summary.total), style="bold")
    console.print(table)


def render_outputs(stack: StackSnapshot) -> None:
    if not stack.outputs:
        return
    table = Table(title=f"Outputs of {stack.name}")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_column("Description")
    table.add_column("Export name")
    for output in stack.outputs:
        table.add_row(output.key, output.value, output.description, output.export_name)
    console.print(table)


def event_line(event: StackEvent) -> str:
    style = "red" if event.is_failure else ("green" if event.status.endswith("_COMPLETE") else "")
    status = f"[{style}]{event.status}[/{style}]" if style else event.status
    line = f"{event.timestamp:%H:%M:%S} {status} {event.resource_type} ({event.logical_id})"
    if event.status_reason and event.is_failure:
        line = f"{line}: {event.status_reason}"
    return line


def render_failed_events(events: list[StackEvent]) -> None:
    if not events:
        return
    table = Table(title="Failed events")
    table.add_column("Time")
    table.add_column("Status", style="red")
    table.add_column("Resource", style="cyan")
    table.add_column("Reason")
    for event in events:
        table.add_row(
            _time(event.timestamp),
            event.status,
            f"{event.resource_type} ({event.logical_id})",
            event.status_reason,
        )
    console.print(table)


def render_durations(durations: dict[str, timedelta]) -> None:
    if not durations:
        return
    table = Table(title="Resource durations")
    table.add_column("Resource", style="cyan")
    table.add_column("Duration", justify="right")
    for key, value in sorted(durations.items(), key=lambda item: item[1], reverse=True):
        table.add_row(key, _duration(value))
    console.print(table)


def render_exports(exports: list[Export]) -> None:
    table = Table(title="Exports")
    table.add_column("Export", style="cyan")
    table.add_column("Stack")
    table.add_column("Value")
    table.add_column("Imported by")
    for export in exports:
        table.add_row(export.name, export.stack_name, export.value, ", ".join(export.importers))
    console.print(table)


def render_resources(resources: list[StackResource]) -> None:
    table = Table(title="Resources")
    table.add_column("Stack")
    table.add_column("Logical ID", style="cyan")
    table.add_column("Type")
    table.add_column("Physical ID")
    table.add_column("Status")
    for resource in resources:
        table.add_row(
            resource.stack_name,
            resource.logical_id,
            resource.resource_type,
            resource.physical_id,
            resource.status,
        )
    console.print(table)


def render_dependencies(dependencies: list[StackDependency]) -> None:
    table = Table(title="Stack dependencies")
    table.add_column("Stack", style="cyan")
    table.add_column("Description")
    table.add_column("Imported by")
    for dependency in dependencies:
        table.add_row(dependency.name, dependency.description, ", ".join(dependency.imported_by))
    console.print(table)


def render_drift(report: DriftReport) -> None:
    console.print(
        f"Drift detection for [cyan]{report.stack_name}[/cyan]: "
        f"{report.detection_status}, stack is {report.stack_drift_status or 'UNKNOWN'}"
    )
    table = Table(title="Resource drift")
    table.add_column("Logical ID", style="cyan")
    table.add_column("Type")
    table.add_column("Drift")
    table.add_column("Differences")
    for drift in report.drifts:
        style = "" if drift.drift_status == "IN_SYNC" else "red"
        table.add_row(
            drift.logical_id,
            drift.resource_type,
            f"[{style}]{drift.drift_status}[/{style}]" if style else drift.drift_status,
            "\n".join(drift.property_differences),
        )
    for resource in report.unchecked:
        table.add_row(resource.logical_id, resource.resource_type, "NOT_CHECKED", "")
    console.print(table)


def render_deployment_record(record: DeploymentRecord) -> None:
    outcome = "[green]success[/green]" if record.success else "[red]failed[/red]"
    kind = record.kind or "Unknown"
    title = f"{record.stack_name} - {kind} event - started {_time(record.started)}"
    lines = [
        f"Status: {record.status} ({outcome})",
        f"Finished: {_time(record.finished)}",
        f"Duration: {_duration(record.duration) if record.duration is not None else ''}",
    ]
    console.print(Panel("\n".join(lines), title=title, expand=False))

    table = Table(title="Resources")
    table.add_column("Resource", style="cyan")
    table.add_column("Started")
    table.add_column("Final status")
    table.add_column("Duration", justify="right")
    durations = record.durations
    for key, statuses in record.execution_times.items():
        started = min(statuses.values())
        final_status = max(statuses, key=statuses.__getitem__)
        style = "red" if final_status.endswith("_FAILED") else ""
        table.add_row(
            key,
            _time(started),
            f"[{style}]{final_status}[/{style}]" if style else final_status,
            _duration(durations[key]) if key in durations else "",
        )
    console.print(table)
    render_failed_events(record.failures)


def render_deployment_report(records: list[DeploymentRecord]) -> None:
    if not records:
        console.print(StackText.NO_DEPLOYMENTS)
        return
    for record in records:
        render_deployment_record(record)

"""
Deployment history of a stack, rebuilt from its event log.

CloudFormation keeps every stack event, so past deployments can be
recovered without any local state: a deployment starts with a stack-level
``*_IN_PROGRESS`` event following a terminal stack status and ends at the
next terminal stack status. Resource events in between belong to that
deployment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from .events import ExecutionTimes, correlate, failed_events, resource_durations
from .exports import find_stacks
from .models import StackEvent
from .naming import canonical_stack_name
from .port import CloudFormationPort
from .retry import DEFAULT_RETRY, RetryPolicy, call_remote

logger = logging.getLogger(__name__)

STACK_RESOURCE_TYPE = "AWS::CloudFormation::Stack"

SUCCESS_STATUSES = frozenset(
    {"CREATE_COMPLETE", "IMPORT_COMPLETE", "UPDATE_COMPLETE", "DELETE_COMPLETE"}
)

DEPLOYMENT_KINDS = {
    "REVIEW_IN_PROGRESS": "Create",
    "CREATE_IN_PROGRESS": "Create",
    "UPDATE_IN_PROGRESS": "Update",
    "DELETE_IN_PROGRESS": "Delete",
    "IMPORT_IN_PROGRESS": "Import",
}


@dataclass
class DeploymentRecord:
    """One past deployment of a stack."""

    stack_name: str
    kind: str
    started: datetime
    finished: datetime | None = None
    status: str = ""
    milestones: list[tuple[datetime, str]] = field(default_factory=list)
    events: list[StackEvent] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return self.finished is not None

    @property
    def success(self) -> bool:
        return self.status in SUCCESS_STATUSES

    @property
    def duration(self) -> timedelta | None:
        if self.finished is None:
            return None
        return self.finished - self.started

    @property
    def execution_times(self) -> ExecutionTimes:
        return correlate(reversed(self.events), self.started)

    @property
    def durations(self) -> dict[str, timedelta]:
        return resource_durations(self.execution_times)

    @property
    def failures(self) -> list[StackEvent]:
        return failed_events(self.events, self.started)

    def summary(self) -> dict[str, Any]:
        return {
            "stack_name": self.stack_name,
            "kind": self.kind,
            "started": self.started,
            "finished": self.finished,
            "status": self.status,
            "success": self.success,
            "duration_seconds": (
                self.duration.total_seconds() if self.duration is not None else None
            ),
            "milestones": [{"time": ts, "status": status} for ts, status in self.milestones],
            "resources": {
                key: value.total_seconds() for key, value in self.durations.items()
            },
            "failures": [
                {
                    "time": event.timestamp,
                    "resource": f"{event.resource_type} ({event.logical_id})",
                    "status": event.status,
                    "reason": event.status_reason,
                }
                for event in self.failures
            ],
        }


def _is_stack_event(event: StackEvent, stack_name: str) -> bool:
    return event.resource_type == STACK_RESOURCE_TYPE and event.logical_id == stack_name


def split_deployments(stack_name: str, events: list[StackEvent]) -> list[DeploymentRecord]:
    """
    Group a stack's events, oldest first, into deployments.

    ``stack_name`` may be the stack ARN. A deployment still running at the
    end of the log is returned with ``finished`` unset.
    """
    name = canonical_stack_name(stack_name)
    records: list[DeploymentRecord] = []
    current: DeploymentRecord | None = None
    for event in events:
        if not _is_stack_event(event, name):
            if current is not None:
                current.events.append(event)
            continue
        if current is None or current.complete:
            current = DeploymentRecord(
                stack_name=name,
                kind=DEPLOYMENT_KINDS.get(event.status, ""),
                started=event.timestamp,
            )
            records.append(current)
        elif not event.status.endswith("_IN_PROGRESS"):
            current.finished = event.timestamp
        current.status = event.status
        current.milestones.append((event.timestamp, event.status))
    return records


async def fetch_all_events(
    port: CloudFormationPort,
    stack_name: str,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> list[StackEvent]:
    """Every event of a stack, oldest first."""
    events: list[StackEvent] = []
    next_token: str | None = None
    while True:
        page = await call_remote(port.describe_stack_events, stack_name, next_token, policy=retry)
        events.extend(page.events)
        if not page.next_token:
            break
        next_token = page.next_token
    return sorted(events, key=lambda event: event.timestamp)


async def deployment_history(
    port: CloudFormationPort,
    stack_name: str,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> list[DeploymentRecord]:
    """Finished deployments of one stack (name or ARN), oldest first."""
    events = await fetch_all_events(port, stack_name, retry)
    records = [record for record in split_deployments(stack_name, events) if record.complete]
    logger.debug(f"{len(records)} deployments found for {stack_name}")
    return records


async def deployment_report(
    port: CloudFormationPort,
    pattern: str | None = None,
    latest_only: bool = False,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> list[DeploymentRecord]:
    """
    Deployment history of every stack matching ``pattern``.

    Stacks are reported in name order; with ``latest_only`` only the most
    recent finished deployment of each stack is kept.
    """
    stacks = sorted(await find_stacks(port, pattern, retry), key=lambda stack: stack.name)
    records: list[DeploymentRecord] = []
    for stack in stacks:
        history = await deployment_history(port, stack.stack_id or stack.name, retry)
        records.extend(history[-1:] if latest_only else history)
    return records

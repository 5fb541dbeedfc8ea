"""
Cloud API port.

The minimum set of CloudFormation capabilities the engine needs, expressed
as an async Protocol. The production adapter lives in boto_port; tests
supply an in-memory fake.

Every operation is a coroutine, so asyncio cancellation and
``asyncio.timeout`` act as the deadline handle. Failures are raised as
CloudError with an ErrorKind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

from .models import (
    ChangeSet,
    ChangeSetType,
    Parameter,
    StackEvent,
    StackResource,
    StackSnapshot,
    Tag,
    TemplateSource,
)


@dataclass(frozen=True)
class ChangeSetRequest:
    """Everything CreateChangeSet needs, already validated."""

    stack_name: str
    change_set_name: str
    change_set_type: ChangeSetType
    template: TemplateSource
    parameters: tuple[Parameter, ...] = ()
    tags: tuple[Tag, ...] = ()
    capabilities: tuple[str, ...] = ()


@dataclass
class EventPage:
    events: list[StackEvent] = field(default_factory=list)
    next_token: str | None = None


@dataclass
class ChangeSetPage:
    """One DescribeChangeSet page; header fields repeat on every page."""

    change_set: ChangeSet
    next_token: str | None = None


@dataclass
class ImportsPage:
    stack_names: list[str] = field(default_factory=list)
    next_token: str | None = None


@dataclass(frozen=True)
class DriftDetection:
    detection_id: str
    detection_status: str
    stack_drift_status: str = ""
    status_reason: str = ""
    drifted_resource_count: int = 0
    timestamp: datetime | None = None


@dataclass(frozen=True)
class ResourceDrift:
    logical_id: str
    physical_id: str
    resource_type: str
    drift_status: str
    property_differences: tuple[str, ...] = ()


@dataclass
class DriftPage:
    drifts: list[ResourceDrift] = field(default_factory=list)
    next_token: str | None = None


@runtime_checkable
class CloudFormationPort(Protocol):
    """Async facade over the CloudFormation operations the engine uses."""

    region: str

    async def describe_stacks(self, stack_name: str | None = None) -> list[StackSnapshot]:
        """Describe one stack (name or ARN) or, with None, every stack in the region."""
        ...

    async def describe_stack_resources(self, stack_name: str) -> list[StackResource]: ...

    async def describe_stack_events(
        self, stack_name: str, next_token: str | None = None
    ) -> EventPage: ...

    async def create_change_set(self, request: ChangeSetRequest) -> str:
        """Create a change set and return its identifier."""
        ...

    async def describe_change_set(
        self, stack_name: str, change_set_name: str, next_token: str | None = None
    ) -> ChangeSetPage: ...

    async def execute_change_set(self, stack_name: str, change_set_name: str) -> None: ...

    async def delete_change_set(self, stack_name: str, change_set_name: str) -> None: ...

    async def delete_stack(self, stack_name: str) -> None: ...

    async def list_imports(
        self, export_name: str, next_token: str | None = None
    ) -> ImportsPage: ...

    async def detect_stack_drift(self, stack_name: str) -> str:
        """Start drift detection and return the detection id."""
        ...

    async def describe_stack_drift_detection_status(
        self, detection_id: str
    ) -> DriftDetection: ...

    async def describe_stack_resource_drifts(
        self, stack_name: str, next_token: str | None = None
    ) -> DriftPage: ...

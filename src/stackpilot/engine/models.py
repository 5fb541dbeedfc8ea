"""
Data models for the deployment engine.

Stack snapshots, events and outputs are immutable copies of what the
provider returned. Deployment and ChangeSet are mutable and owned by the
orchestrator for the duration of a single deploy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from .errors import ConfigurationError

REQUIRES_RECREATION_NEVER = "Never"


class TemplateSourceKind(StrEnum):
    """Where the template for a change set comes from."""

    BODY = "body"
    URL = "url"
    PREVIOUS = "previous"
    NONE = "none"


class ChangeSetType(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"


@dataclass(frozen=True)
class TemplateSource:
    """Exactly one of: inline body, remote URL, reuse-previous, none."""

    kind: TemplateSourceKind = TemplateSourceKind.NONE
    body: str | None = None
    url: str | None = None

    def __post_init__(self) -> None:
        if self.kind == TemplateSourceKind.BODY and not self.body:
            raise ConfigurationError("an inline template source needs a template body")
        if self.kind == TemplateSourceKind.URL and not self.url:
            raise ConfigurationError("a remote template source needs a template URL")
        if self.kind != TemplateSourceKind.BODY and self.body:
            raise ConfigurationError("a template body is only valid for inline template sources")
        if self.kind != TemplateSourceKind.URL and self.url:
            raise ConfigurationError("a template URL is only valid for remote template sources")

    @classmethod
    def inline(cls, body: str) -> TemplateSource:
        return cls(kind=TemplateSourceKind.BODY, body=body)

    @classmethod
    def remote(cls, url: str) -> TemplateSource:
        return cls(kind=TemplateSourceKind.URL, url=url)

    @classmethod
    def previous(cls) -> TemplateSource:
        return cls(kind=TemplateSourceKind.PREVIOUS)

    @classmethod
    def none(cls) -> TemplateSource:
        return cls()


@dataclass(frozen=True)
class Parameter:
    key: str
    value: str = ""
    use_previous_value: bool = False


@dataclass(frozen=True)
class Tag:
    key: str
    value: str


@dataclass(frozen=True)
class ChangeDetail:
    """A property-level change record inside a resource change."""

    evaluation: str
    attribute: str
    requires_recreation: str
    causing_entity: str = ""
    name: str = ""
    change_source: str = ""

    @property
    def forces_replacement(self) -> bool:
        return self.requires_recreation != REQUIRES_RECREATION_NEVER


@dataclass
class ResourceChange:
    """One row in a change set preview."""

    action: str
    logical_id: str
    resource_type: str
    replacement: str = ""
    physical_id: str = ""
    module: str = ""
    details: list[ChangeDetail] = field(default_factory=list)

    def danger_details(self) -> list[str]:
        """Describe every detail that may force the resource to be recreated."""
        return [
            f"{detail.evaluation}: {detail.attribute} - {detail.causing_entity}"
            for detail in self.details
            if detail.forces_replacement
        ]

    @property
    def is_dangerous(self) -> bool:
        return any(detail.forces_replacement for detail in self.details)


@dataclass
class ChangeSet:
    """A provider-computed preview plus its execution handle."""

    change_set_id: str
    name: str
    stack_id: str
    stack_name: str
    status: str = ""
    status_reason: str = ""
    execution_status: str = ""
    creation_time: datetime | None = None
    changes: list[ResourceChange] = field(default_factory=list)
    has_module: bool = False

    def add_change(self, change: ResourceChange) -> None:
        """Append a change; module provenance is sticky once seen."""
        self.changes.append(change)
        if change.module:
            self.has_module = True

    @property
    def dangerous_changes(self) -> list[ResourceChange]:
        return [change for change in self.changes if change.is_dangerous]


@dataclass(frozen=True)
class StackOutput:
    key: str
    value: str
    description: str = ""
    export_name: str = ""


@dataclass(frozen=True)
class StackSnapshot:
    """Immutable copy of a stack as returned by DescribeStacks."""

    stack_id: str
    name: str
    status: str
    creation_time: datetime | None = None
    status_reason: str = ""
    description: str = ""
    parameters: tuple[Parameter, ...] = ()
    outputs: tuple[StackOutput, ...] = ()
    tags: tuple[Tag, ...] = ()
    drift_status: str = ""
    last_drift_check: datetime | None = None

    @property
    def exports(self) -> list[StackOutput]:
        return [output for output in self.outputs if output.export_name]


@dataclass(frozen=True)
class StackEvent:
    timestamp: datetime
    logical_id: str
    resource_type: str
    status: str
    status_reason: str = ""
    physical_id: str = ""
    event_id: str = ""
    stack_name: str = ""

    @property
    def is_failure(self) -> bool:
        return self.status.endswith("_FAILED")


@dataclass(frozen=True)
class StackResource:
    stack_name: str
    logical_id: str
    physical_id: str
    resource_type: str
    status: str


@dataclass
class Export:
    """A named stack output, with the stacks importing it filled in lazily."""

    name: str
    value: str
    stack_name: str
    output_key: str = ""
    description: str = ""
    imported: bool = False
    importers: list[str] = field(default_factory=list)


@dataclass
class Deployment:
    """
    One in-flight deploy request.

    Created by the CLI (or any other caller) and mutated by the
    orchestrator as the deploy progresses.
    """

    stack_name: str
    change_set_name: str
    template: TemplateSource = field(default_factory=TemplateSource.none)
    parameters: list[Parameter] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)
    capabilities: list[str] = field(default_factory=list)
    dry_run: bool = False
    create_only: bool = False
    stack_id: str = ""
    is_new: bool = False
    prechecks_failed: bool = False
    change_set: ChangeSet | None = None
    final_stack: StackSnapshot | None = None

    def __post_init__(self) -> None:
        _ensure_unique_keys("parameter", [param.key for param in self.parameters])
        _ensure_unique_keys("tag", [tag.key for tag in self.tags])

    @property
    def change_set_type(self) -> ChangeSetType:
        return ChangeSetType.CREATE if self.is_new else ChangeSetType.UPDATE

    @property
    def lookup_name(self) -> str:
        """Prefer the ARN once known, since it survives renames and recreation."""
        return self.stack_id or self.stack_name

    def summary(self) -> dict[str, Any]:
        return {
            "stack_name": self.stack_name,
            "stack_id": self.stack_id,
            "change_set_name": self.change_set_name,
            "action": "Create" if self.is_new else "Update",
            "dry_run": self.dry_run,
        }


def _ensure_unique_keys(kind: str, keys: list[str]) -> None:
    seen: set[str] = set()
    for key in keys:
        if key in seen:
            raise ConfigurationError(f"duplicate {kind} key '{key}'")
        seen.add(key)

"""In-memory CloudFormation port and builders shared by the test suite."""

from __future__ import annotations

from collections import defaultdict, deque
from datetime import UTC, datetime, timedelta
from typing import Any

from stackpilot.engine.errors import CloudError, ErrorKind
from stackpilot.engine.models import (
    ChangeDetail,
    ChangeSet,
    ResourceChange,
    StackEvent,
    StackOutput,
    StackResource,
    StackSnapshot,
)
from stackpilot.engine.port import (
    ChangeSetPage,
    ChangeSetRequest,
    DriftDetection,
    DriftPage,
    EventPage,
    ImportsPage,
)

REGION = "eu-west-1"
ACCOUNT = "123456789012"
T0 = datetime(2024, 1, 15, 10, 30, 0, tzinfo=UTC)


def at(seconds: float) -> datetime:
    """A timestamp ``seconds`` after T0."""
    return T0 + timedelta(seconds=seconds)


def stack_arn(name: str) -> str:
    return f"arn:aws:cloudformation:{REGION}:{ACCOUNT}:stack/{name}/0a1b2c3d"


def change_set_arn(name: str) -> str:
    return f"arn:aws:cloudformation:{REGION}:{ACCOUNT}:changeSet/{name}/9f8e7d6c"


def make_stack(
    name: str,
    status: str = "CREATE_COMPLETE",
    exports: dict[str, str] | None = None,
    description: str = "",
    status_reason: str = "",
) -> StackSnapshot:
    outputs = tuple(
        StackOutput(key=export.replace("-", ""), value=value, export_name=export)
        for export, value in (exports or {}).items()
    )
    return StackSnapshot(
        stack_id=stack_arn(name),
        name=name,
        status=status,
        creation_time=T0,
        status_reason=status_reason,
        description=description,
        outputs=outputs,
    )


def make_event(
    seconds: float,
    logical_id: str,
    status: str,
    resource_type: str = "AWS::S3::Bucket",
    reason: str = "",
    event_id: str = "",
) -> StackEvent:
    return StackEvent(
        timestamp=at(seconds),
        logical_id=logical_id,
        resource_type=resource_type,
        status=status,
        status_reason=reason,
        event_id=event_id or f"{logical_id}-{status}-{seconds}",
    )


def make_change(
    logical_id: str,
    action: str = "Modify",
    resource_type: str = "AWS::S3::Bucket",
    requires_recreation: str = "Never",
    module: str = "",
) -> ResourceChange:
    return ResourceChange(
        action=action,
        logical_id=logical_id,
        resource_type=resource_type,
        replacement="True" if requires_recreation == "Always" else "False",
        physical_id=f"{logical_id.lower()}-physical",
        module=module,
        details=[
            ChangeDetail(
                evaluation="Static",
                attribute="Properties",
                requires_recreation=requires_recreation,
                causing_entity="BucketName",
            )
        ],
    )


def make_change_set(
    name: str = "cs-1",
    stack_name: str = "web",
    status: str = "CREATE_COMPLETE",
    reason: str = "",
    changes: list[ResourceChange] | None = None,
    created: datetime = T0,
) -> ChangeSet:
    change_set = ChangeSet(
        change_set_id=change_set_arn(name),
        name=name,
        stack_id=stack_arn(stack_name),
        stack_name=stack_name,
        status=status,
        status_reason=reason,
        execution_status="AVAILABLE" if status == "CREATE_COMPLETE" else "UNAVAILABLE",
        creation_time=created,
    )
    for change in changes or []:
        change_set.add_change(change)
    return change_set


def not_found(message: str, operation: str = "") -> CloudError:
    return CloudError(ErrorKind.NOT_FOUND, message, operation=operation, code="ValidationError")


def throttled(operation: str = "") -> CloudError:
    return CloudError(ErrorKind.THROTTLED, "Rate exceeded", operation=operation, code="Throttling")


class FakeCloudFormation:
    """
    Scriptable stand-in for the CloudFormation port.

    Static state (stacks, resources, imports) answers calls by default.
    ``script(operation, *responses)`` queues responses that are consumed
    one per call before the default applies; a queued exception is raised
    and a queued callable is called with the call's arguments.
    """

    def __init__(self, region: str = REGION):
        self.region = region
        self.stacks: dict[str, StackSnapshot] = {}
        self.resources: dict[str, list[StackResource]] = {}
        self.events: dict[str, list[StackEvent]] = defaultdict(list)
        self.imports: dict[str, list[str]] = {}
        self.change_sets: dict[str, ChangeSet] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.requests: list[ChangeSetRequest] = []
        self._scripts: dict[str, deque[Any]] = defaultdict(deque)

    def add_stack(self, stack: StackSnapshot) -> StackSnapshot:
        self.stacks[stack.name] = stack
        return stack

    def script(self, operation: str, *responses: Any) -> None:
        self._scripts[operation].extend(responses)

    def called(self, operation: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == operation]

    def _next(self, operation: str, args: tuple[Any, ...]) -> tuple[bool, Any]:
        self.calls.append((operation, args))
        queue = self._scripts[operation]
        if not queue:
            return False, None
        response = queue.popleft()
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return True, response(*args)
        return True, response

    def _find(self, name_or_arn: str) -> StackSnapshot | None:
        for stack in self.stacks.values():
            if name_or_arn in (stack.name, stack.stack_id):
                return stack
        return None

    async def describe_stacks(self, stack_name: str | None = None) -> list[StackSnapshot]:
        scripted, response = self._next("describe_stacks", (stack_name,))
        if scripted:
            return response
        if stack_name is None:
            return list(self.stacks.values())
        stack = self._find(stack_name)
        if stack is None:
            raise not_found(f"Stack with id {stack_name} does not exist", "DescribeStacks")
        return [stack]

    async def describe_stack_resources(self, stack_name: str) -> list[StackResource]:
        scripted, response = self._next("describe_stack_resources", (stack_name,))
        if scripted:
            return response
        return list(self.resources.get(stack_name, []))

    async def describe_stack_events(
        self, stack_name: str, next_token: str | None = None
    ) -> EventPage:
        scripted, response = self._next("describe_stack_events", (stack_name, next_token))
        if scripted:
            return response
        stack = self._find(stack_name)
        key = stack.name if stack else stack_name
        events = sorted(self.events[key], key=lambda event: event.timestamp, reverse=True)
        return EventPage(events=events)

    async def create_change_set(self, request: ChangeSetRequest) -> str:
        scripted, response = self._next("create_change_set", (request,))
        self.requests.append(request)
        if scripted:
            return response
        return change_set_arn(request.change_set_name)

    async def describe_change_set(
        self, stack_name: str, change_set_name: str, next_token: str | None = None
    ) -> ChangeSetPage:
        scripted, response = self._next(
            "describe_change_set", (stack_name, change_set_name, next_token)
        )
        if scripted:
            return response
        change_set = self.change_sets.get(change_set_name)
        if change_set is None:
            raise CloudError(
                ErrorKind.NOT_FOUND,
                f"ChangeSet [{change_set_name}] does not exist",
                operation="DescribeChangeSet",
                code="ChangeSetNotFound",
            )
        return ChangeSetPage(change_set=change_set)

    async def execute_change_set(self, stack_name: str, change_set_name: str) -> None:
        self._next("execute_change_set", (stack_name, change_set_name))

    async def delete_change_set(self, stack_name: str, change_set_name: str) -> None:
        self._next("delete_change_set", (stack_name, change_set_name))

    async def delete_stack(self, stack_name: str) -> None:
        self._next("delete_stack", (stack_name,))

    async def list_imports(self, export_name: str, next_token: str | None = None) -> ImportsPage:
        scripted, response = self._next("list_imports", (export_name, next_token))
        if scripted:
            return response
        if export_name not in self.imports:
            raise not_found(f"Export '{export_name}' is not imported by any stack.", "ListImports")
        return ImportsPage(stack_names=list(self.imports[export_name]))

    async def detect_stack_drift(self, stack_name: str) -> str:
        scripted, response = self._next("detect_stack_drift", (stack_name,))
        return response if scripted else f"drift-{stack_name}"

    async def describe_stack_drift_detection_status(self, detection_id: str) -> DriftDetection:
        scripted, response = self._next("describe_stack_drift_detection_status", (detection_id,))
        if scripted:
            return response
        return DriftDetection(
            detection_id=detection_id,
            detection_status="DETECTION_COMPLETE",
            stack_drift_status="IN_SYNC",
        )

    async def describe_stack_resource_drifts(
        self, stack_name: str, next_token: str | None = None
    ) -> DriftPage:
        scripted, response = self._next("describe_stack_resource_drifts", (stack_name, next_token))
        if scripted:
            return response
        return DriftPage()

"""
aioboto3 implementation of the CloudFormation port.

Opens one CloudFormation client per process and maps the raw responses onto
the engine's dataclasses. botocore errors are translated into CloudError so
nothing above this module sees provider exception types.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import AsyncExitStack, contextmanager
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from .changesets import module_path
from .errors import CloudError, ErrorKind
from .models import (
    ChangeDetail,
    ChangeSet,
    Parameter,
    ResourceChange,
    StackEvent,
    StackOutput,
    StackResource,
    StackSnapshot,
    Tag,
    TemplateSourceKind,
)
from .port import (
    ChangeSetPage,
    ChangeSetRequest,
    DriftDetection,
    DriftPage,
    EventPage,
    ImportsPage,
    ResourceDrift,
)

logger = logging.getLogger(__name__)

THROTTLING_CODES = frozenset(
    {"Throttling", "ThrottlingException", "RequestLimitExceeded", "TooManyRequestsException"}
)
NOT_FOUND_CODES = frozenset(
    {"ChangeSetNotFound", "ChangeSetNotFoundException", "StackNotFoundException", "NoSuchBucket"}
)
NOT_FOUND_MARKERS = ("does not exist", "is not imported by any stack")
VALIDATION_CODES = frozenset(
    {"ValidationError", "InsufficientCapabilitiesException", "InvalidParameterValue"}
)
ALREADY_EXISTS_CODES = frozenset({"AlreadyExistsException", "NameAlreadyExistsException"})
UNAUTHORIZED_CODES = frozenset(
    {
        "AccessDenied",
        "AccessDeniedException",
        "UnauthorizedOperation",
        "ExpiredToken",
        "ExpiredTokenException",
    }
)
CONFLICT_CODES = frozenset(
    {
        "OperationInProgressException",
        "InvalidChangeSetStatus",
        "InvalidChangeSetStatusException",
        "TokenAlreadyExistsException",
    }
)


def classify_error_code(code: str, message: str) -> ErrorKind:
    if code in THROTTLING_CODES:
        return ErrorKind.THROTTLED
    if code in NOT_FOUND_CODES:
        return ErrorKind.NOT_FOUND
    if code == "ValidationError" and any(marker in message for marker in NOT_FOUND_MARKERS):
        return ErrorKind.NOT_FOUND
    if code in VALIDATION_CODES:
        return ErrorKind.VALIDATION
    if code in ALREADY_EXISTS_CODES:
        return ErrorKind.ALREADY_EXISTS
    if code in UNAUTHORIZED_CODES:
        return ErrorKind.UNAUTHORIZED
    if code in CONFLICT_CODES:
        return ErrorKind.CONFLICT
    return ErrorKind.GENERIC


def translate_client_error(error: ClientError, operation: str = "") -> CloudError:
    """Turn a botocore ClientError into a CloudError, keeping the provider message."""
    details = error.response.get("Error", {})
    code = details.get("Code", "")
    message = details.get("Message", "") or str(error)
    return CloudError(classify_error_code(code, message), message, operation=operation, code=code)


@contextmanager
def translated(operation: str) -> Iterator[None]:
    try:
        yield
    except ClientError as e:
        raise translate_client_error(e, operation) from e
    except NoCredentialsError as e:
        raise CloudError(ErrorKind.UNAUTHORIZED, str(e), operation=operation) from e
    except BotoCoreError as e:
        raise CloudError(ErrorKind.GENERIC, str(e), operation=operation) from e


# =============================================================================
# Response mapping
# =============================================================================


def _stack_from(data: dict[str, Any]) -> StackSnapshot:
    drift = data.get("DriftInformation", {})
    return StackSnapshot(
        stack_id=data.get("StackId", ""),
        name=data.get("StackName", ""),
        status=data.get("StackStatus", ""),
        creation_time=data.get("CreationTime"),
        status_reason=data.get("StackStatusReason", ""),
        description=data.get("Description", ""),
        parameters=tuple(
            Parameter(key=p["ParameterKey"], value=p.get("ParameterValue", ""))
            for p in data.get("Parameters", [])
        ),
        outputs=tuple(
            StackOutput(
                key=o.get("OutputKey", ""),
                value=o.get("OutputValue", ""),
                description=o.get("Description", ""),
                export_name=o.get("ExportName", ""),
            )
            for o in data.get("Outputs", [])
        ),
        tags=tuple(Tag(key=t["Key"], value=t["Value"]) for t in data.get("Tags", [])),
        drift_status=drift.get("StackDriftStatus", ""),
        last_drift_check=drift.get("LastCheckTimestamp"),
    )


def _event_from(data: dict[str, Any]) -> StackEvent:
    return StackEvent(
        timestamp=data["Timestamp"],
        logical_id=data.get("LogicalResourceId", ""),
        resource_type=data.get("ResourceType", ""),
        status=data.get("ResourceStatus", ""),
        status_reason=data.get("ResourceStatusReason", ""),
        physical_id=data.get("PhysicalResourceId", ""),
        event_id=data.get("EventId", ""),
        stack_name=data.get("StackName", ""),
    )


def _change_from(data: dict[str, Any]) -> ResourceChange:
    change = data.get("ResourceChange", {})
    module = ""
    if info := change.get("ModuleInfo"):
        module = module_path(info.get("LogicalIdHierarchy", ""), info.get("TypeHierarchy", ""))
    details = [
        ChangeDetail(
            evaluation=detail.get("Evaluation", ""),
            attribute=detail.get("Target", {}).get("Attribute", ""),
            requires_recreation=detail.get("Target", {}).get("RequiresRecreation", ""),
            causing_entity=detail.get("CausingEntity", ""),
            name=detail.get("Target", {}).get("Name", ""),
            change_source=detail.get("ChangeSource", ""),
        )
        for detail in change.get("Details", [])
    ]
    return ResourceChange(
        action=change.get("Action", ""),
        logical_id=change.get("LogicalResourceId", ""),
        resource_type=change.get("ResourceType", ""),
        replacement=change.get("Replacement", ""),
        physical_id=change.get("PhysicalResourceId", ""),
        module=module,
        details=details,
    )


def _change_set_from(data: dict[str, Any]) -> ChangeSet:
    change_set = ChangeSet(
        change_set_id=data.get("ChangeSetId", ""),
        name=data.get("ChangeSetName", ""),
        stack_id=data.get("StackId", ""),
        stack_name=data.get("StackName", ""),
        status=data.get("Status", ""),
        status_reason=data.get("StatusReason", ""),
        execution_status=data.get("ExecutionStatus", ""),
        creation_time=data.get("CreationTime"),
    )
    for change in data.get("Changes", []):
        if change.get("Type", "Resource") == "Resource":
            change_set.add_change(_change_from(change))
    return change_set


def _drift_from(data: dict[str, Any]) -> ResourceDrift:
    differences = tuple(
        f"{diff.get('DifferenceType', '')}: {diff.get('PropertyPath', '')}"
        for diff in data.get("PropertyDifferences", [])
    )
    return ResourceDrift(
        logical_id=data.get("LogicalResourceId", ""),
        physical_id=data.get("PhysicalResourceId", ""),
        resource_type=data.get("ResourceType", ""),
        drift_status=data.get("StackResourceDriftStatus", ""),
        property_differences=differences,
    )


def change_set_request_kwargs(request: ChangeSetRequest) -> dict[str, Any]:
    """CreateChangeSet arguments for a request."""
    kwargs: dict[str, Any] = {
        "StackName": request.stack_name,
        "ChangeSetName": request.change_set_name,
        "ChangeSetType": str(request.change_set_type),
        "Parameters": [
            {"ParameterKey": p.key, "UsePreviousValue": True}
            if p.use_previous_value
            else {"ParameterKey": p.key, "ParameterValue": p.value}
            for p in request.parameters
        ],
        "Tags": [{"Key": t.key, "Value": t.value} for t in request.tags],
    }
    if request.capabilities:
        kwargs["Capabilities"] = list(request.capabilities)
    template = request.template
    if template.kind == TemplateSourceKind.BODY:
        kwargs["TemplateBody"] = template.body
    elif template.kind == TemplateSourceKind.URL:
        kwargs["TemplateURL"] = template.url
    elif template.kind == TemplateSourceKind.PREVIOUS:
        kwargs["UsePreviousTemplate"] = True
    return kwargs


def _paging(next_token: str | None) -> dict[str, str]:
    return {"NextToken": next_token} if next_token else {}


# =============================================================================
# Adapter
# =============================================================================


class AioBotoCloudFormation:
    """
    CloudFormation port backed by an aioboto3 client.

    Usage:
        async with AioBotoCloudFormation(session, region="eu-west-1") as port:
            stacks = await port.describe_stacks("my-stack")
    """

    def __init__(self, session: Any, region: str, endpoint_url: str | None = None):
        self.session = session
        self.region = region
        self.endpoint_url = endpoint_url
        self._client: Any = None
        self._stack: AsyncExitStack | None = None

    async def __aenter__(self) -> AioBotoCloudFormation:
        kwargs: dict[str, Any] = {"region_name": self.region}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        self._stack = AsyncExitStack()
        with translated("CreateClient"):
            self._client = await self._stack.enter_async_context(
                self.session.client("cloudformation", **kwargs)
            )
        logger.debug(f"Opened CloudFormation client for {self.region}")
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._stack is not None:
            await self._stack.__aexit__(*exc_info)
        self._stack = None
        self._client = None

    @property
    def client(self) -> Any:
        if self._client is None:
            raise RuntimeError("AioBotoCloudFormation must be used as an async context manager")
        return self._client

    async def describe_stacks(self, stack_name: str | None = None) -> list[StackSnapshot]:
        kwargs = {"StackName": stack_name} if stack_name else {}
        stacks: list[StackSnapshot] = []
        with translated("DescribeStacks"):
            paginator = self.client.get_paginator("describe_stacks")
            async for page in paginator.paginate(**kwargs):
                stacks.extend(_stack_from(stack) for stack in page.get("Stacks", []))
        return stacks

    async def describe_stack_resources(self, stack_name: str) -> list[StackResource]:
        with translated("DescribeStackResources"):
            response = await self.client.describe_stack_resources(StackName=stack_name)
        return [
            StackResource(
                stack_name=r.get("StackName", stack_name),
                logical_id=r.get("LogicalResourceId", ""),
                physical_id=r.get("PhysicalResourceId", ""),
                resource_type=r.get("ResourceType", ""),
                status=r.get("ResourceStatus", ""),
            )
            for r in response.get("StackResources", [])
        ]

    async def describe_stack_events(
        self, stack_name: str, next_token: str | None = None
    ) -> EventPage:
        with translated("DescribeStackEvents"):
            response = await self.client.describe_stack_events(
                StackName=stack_name, **_paging(next_token)
            )
        return EventPage(
            events=[_event_from(event) for event in response.get("StackEvents", [])],
            next_token=response.get("NextToken"),
        )

    async def create_change_set(self, request: ChangeSetRequest) -> str:
        with translated("CreateChangeSet"):
            response = await self.client.create_change_set(**change_set_request_kwargs(request))
        return response["Id"]

    async def describe_change_set(
        self, stack_name: str, change_set_name: str, next_token: str | None = None
    ) -> ChangeSetPage:
        with translated("DescribeChangeSet"):
            response = await self.client.describe_change_set(
                StackName=stack_name, ChangeSetName=change_set_name, **_paging(next_token)
            )
        return ChangeSetPage(
            change_set=_change_set_from(response), next_token=response.get("NextToken")
        )

    async def execute_change_set(self, stack_name: str, change_set_name: str) -> None:
        with translated("ExecuteChangeSet"):
            await self.client.execute_change_set(
                StackName=stack_name, ChangeSetName=change_set_name
            )

    async def delete_change_set(self, stack_name: str, change_set_name: str) -> None:
        with translated("DeleteChangeSet"):
            await self.client.delete_change_set(
                StackName=stack_name, ChangeSetName=change_set_name
            )

    async def delete_stack(self, stack_name: str) -> None:
        with translated("DeleteStack"):
            await self.client.delete_stack(StackName=stack_name)

    async def list_imports(self, export_name: str, next_token: str | None = None) -> ImportsPage:
        with translated("ListImports"):
            response = await self.client.list_imports(
                ExportName=export_name, **_paging(next_token)
            )
        return ImportsPage(
            stack_names=list(response.get("Imports", [])), next_token=response.get("NextToken")
        )

    async def detect_stack_drift(self, stack_name: str) -> str:
        with translated("DetectStackDrift"):
            response = await self.client.detect_stack_drift(StackName=stack_name)
        return response["StackDriftDetectionId"]

    async def describe_stack_drift_detection_status(self, detection_id: str) -> DriftDetection:
        with translated("DescribeStackDriftDetectionStatus"):
            response = await self.client.describe_stack_drift_detection_status(
                StackDriftDetectionId=detection_id
            )
        return DriftDetection(
            detection_id=detection_id,
            detection_status=response.get("DetectionStatus", ""),
            stack_drift_status=response.get("StackDriftStatus", ""),
            status_reason=response.get("DetectionStatusReason", ""),
            drifted_resource_count=response.get("DriftedStackResourceCount", 0),
            timestamp=response.get("Timestamp"),
        )

    async def describe_stack_resource_drifts(
        self, stack_name: str, next_token: str | None = None
    ) -> DriftPage:
        with translated("DescribeStackResourceDrifts"):
            response = await self.client.describe_stack_resource_drifts(
                StackName=stack_name, **_paging(next_token)
            )
        return DriftPage(
            drifts=[_drift_from(drift) for drift in response.get("StackResourceDrifts", [])],
            next_token=response.get("NextToken"),
        )

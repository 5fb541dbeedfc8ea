"""
Change set lifecycle: build, create, poll, page, inspect, execute, delete.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from enum import StrEnum

from .errors import CloudError, ConfigurationError, ErrorKind
from .models import ChangeSet, Deployment, TemplateSourceKind
from .port import ChangeSetRequest, CloudFormationPort
from .retry import DEFAULT_RETRY, RetryPolicy, call_remote

logger = logging.getLogger(__name__)

# Provider status reasons for a change set that would change nothing.
NO_CHANGES_MARKERS = ("didn't contain changes", "No updates")

STATUS_CREATE_COMPLETE = "CREATE_COMPLETE"
STATUS_FAILED = "FAILED"
STATUS_DELETE_COMPLETE = "DELETE_COMPLETE"
TERMINAL_STATUSES = frozenset({STATUS_CREATE_COMPLETE, STATUS_FAILED, STATUS_DELETE_COMPLETE})


class ChangeSetOutcome(StrEnum):
    READY = "ready"
    EMPTY = "empty"
    FAILED = "failed"
    DELETED = "deleted"


@dataclass(frozen=True)
class PollSettings:
    """Bounded exponential backoff for polling loops."""

    initial_delay: float = 2.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    timeout: float | None = 600.0

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        while True:
            yield delay
            delay = min(delay * self.multiplier, self.max_delay)


def is_no_changes_reason(reason: str) -> bool:
    return any(marker in reason for marker in NO_CHANGES_MARKERS)


def change_set_outcome(change_set: ChangeSet) -> ChangeSetOutcome | None:
    """Classify a change set status; None while it is still being computed."""
    if change_set.status == STATUS_CREATE_COMPLETE:
        return ChangeSetOutcome.READY
    if change_set.status == STATUS_FAILED:
        if is_no_changes_reason(change_set.status_reason):
            return ChangeSetOutcome.EMPTY
        return ChangeSetOutcome.FAILED
    if change_set.status == STATUS_DELETE_COMPLETE:
        return ChangeSetOutcome.DELETED
    return None


def module_path(logical_id_hierarchy: str, type_hierarchy: str) -> str:
    """Render module provenance as ``<LogicalIdHierarchy>(<TypeHierarchy>)``."""
    return f"{logical_id_hierarchy}({type_hierarchy})"


# =============================================================================
# Build and create
# =============================================================================


def build_change_set_request(deployment: Deployment) -> ChangeSetRequest:
    """
    Validate a deployment and turn it into a CreateChangeSet request.

    Raises:
        ConfigurationError: no template source, or reusing the previous
            template for a stack that doesn't exist yet
    """
    template = deployment.template
    if template.kind == TemplateSourceKind.NONE:
        raise ConfigurationError(
            f"no template provided for stack '{deployment.stack_name}'; "
            "pass a template, a template URL, or reuse the previous template"
        )
    if template.kind == TemplateSourceKind.PREVIOUS and deployment.is_new:
        raise ConfigurationError(
            f"the stack '{deployment.stack_name}' doesn't exist yet, "
            "so there is no previous template to reuse"
        )

    return ChangeSetRequest(
        stack_name=deployment.stack_name,
        change_set_name=deployment.change_set_name,
        change_set_type=deployment.change_set_type,
        template=template,
        parameters=tuple(deployment.parameters),
        tags=tuple(deployment.tags),
        capabilities=tuple(deployment.capabilities),
    )


async def create_change_set(
    port: CloudFormationPort,
    deployment: Deployment,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> ChangeSet:
    """Create the change set for a deployment and attach it to the deployment."""
    request = build_change_set_request(deployment)
    change_set_id = await call_remote(port.create_change_set, request, policy=retry)
    logger.info(
        f"Created {request.change_set_type} change set {request.change_set_name} "
        f"for {request.stack_name}"
    )
    change_set = ChangeSet(
        change_set_id=change_set_id,
        name=request.change_set_name,
        stack_id=deployment.stack_id,
        stack_name=deployment.stack_name,
    )
    deployment.change_set = change_set
    return change_set


# =============================================================================
# Describe and poll
# =============================================================================


async def _collect_pages(
    port: CloudFormationPort,
    stack_name: str,
    change_set_name: str,
    first: ChangeSet,
    next_token: str | None,
    retry: RetryPolicy,
) -> ChangeSet:
    merged = replace(first, changes=[], has_module=False)
    for change in first.changes:
        merged.add_change(change)
    while next_token:
        page = await call_remote(
            port.describe_change_set, stack_name, change_set_name, next_token, policy=retry
        )
        for change in page.change_set.changes:
            merged.add_change(change)
        next_token = page.next_token
    return merged


async def describe_change_set(
    port: CloudFormationPort,
    stack_name: str,
    change_set_name: str,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> ChangeSet:
    """Fetch a change set and every page of its changes, in order."""
    page = await call_remote(
        port.describe_change_set, stack_name, change_set_name, None, policy=retry
    )
    return await _collect_pages(
        port, stack_name, change_set_name, page.change_set, page.next_token, retry
    )


async def wait_for_change_set(
    port: CloudFormationPort,
    stack_name: str,
    change_set_name: str,
    poll: PollSettings | None = None,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> ChangeSet:
    """
    Poll a change set until its status is terminal, then return it with all
    its changes merged.

    Raises:
        CloudError: kind DeadlineExceeded when ``poll.timeout`` elapses,
            or whatever the port raised
    """
    poll = poll or PollSettings()
    delays = poll.delays()
    try:
        async with asyncio.timeout(poll.timeout):
            while True:
                page = await call_remote(
                    port.describe_change_set, stack_name, change_set_name, None, policy=retry
                )
                status = page.change_set.status
                if status in TERMINAL_STATUSES:
                    return await _collect_pages(
                        port,
                        stack_name,
                        change_set_name,
                        page.change_set,
                        page.next_token,
                        retry,
                    )
                delay = next(delays)
                logger.debug(f"Change set {change_set_name} is {status}, checking again in {delay}s")
                await asyncio.sleep(delay)
    except TimeoutError as e:
        raise CloudError(
            ErrorKind.DEADLINE_EXCEEDED,
            f"change set {change_set_name} did not finish within {poll.timeout}s",
            operation="DescribeChangeSet",
        ) from e


# =============================================================================
# Execute and delete
# =============================================================================


async def execute_change_set(
    port: CloudFormationPort,
    change_set: ChangeSet,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> None:
    stack = change_set.stack_id or change_set.stack_name
    await call_remote(port.execute_change_set, stack, change_set.name, policy=retry)
    logger.info(f"Execution of change set {change_set.name} accepted")


async def delete_change_set(
    port: CloudFormationPort,
    change_set: ChangeSet,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> bool:
    """Delete a change set; provider errors are logged and reported as False."""
    stack = change_set.stack_id or change_set.stack_name
    try:
        await call_remote(port.delete_change_set, stack, change_set.name, policy=retry)
    except CloudError as e:
        logger.warning(f"Could not delete change set {change_set.name}: {e}")
        return False
    return True


# =============================================================================
# Inspection
# =============================================================================


@dataclass
class ChangeSummary:
    total: int = 0
    dangerous: int = 0
    by_action: dict[str, int] = field(default_factory=dict)


def summarize_changes(change_set: ChangeSet) -> ChangeSummary:
    counts = Counter(change.action for change in change_set.changes)
    return ChangeSummary(
        total=len(change_set.changes),
        dangerous=len(change_set.dangerous_changes),
        by_action=dict(counts),
    )

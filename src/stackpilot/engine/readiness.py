"""
Stack readiness classification.

Decides whether a stack is new, can be updated, is busy with another
operation, or is stuck in a state that can't be updated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from .errors import ClassificationError, CloudError
from .models import StackSnapshot
from .port import CloudFormationPort
from .retry import DEFAULT_RETRY, RetryPolicy, call_remote

REVIEW_IN_PROGRESS = "REVIEW_IN_PROGRESS"

READY_STATUSES = frozenset(
    {
        "CREATE_COMPLETE",
        "UPDATE_COMPLETE",
        "UPDATE_ROLLBACK_COMPLETE",
        "ROLLBACK_COMPLETE",
        "IMPORT_COMPLETE",
        "IMPORT_ROLLBACK_COMPLETE",
    }
)


class Readiness(StrEnum):
    NEW = "new"
    READY = "ready"
    BUSY = "busy"
    FAILED = "failed"


def classify_status(status: str) -> Readiness:
    """Map a raw stack status to exactly one readiness class."""
    # Only reachable through change sets that were never executed.
    if status == REVIEW_IN_PROGRESS:
        return Readiness.NEW
    if status in READY_STATUSES:
        return Readiness.READY
    if status.endswith("_IN_PROGRESS"):
        return Readiness.BUSY
    return Readiness.FAILED


def is_ongoing(status: str) -> bool:
    return status.endswith("_IN_PROGRESS")


@dataclass(frozen=True)
class StackReadiness:
    exists: bool
    readiness: Readiness
    status: str = ""
    stack: StackSnapshot | None = None

    @property
    def is_new(self) -> bool:
        return self.readiness == Readiness.NEW

    @property
    def can_deploy(self) -> bool:
        return self.readiness in (Readiness.NEW, Readiness.READY)


async def classify_stack(
    port: CloudFormationPort,
    stack_name: str,
    stack_id: str | None = None,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> StackReadiness:
    """
    Look up a stack and classify it.

    The ARN is used when known; otherwise the name. A stack that does not
    exist is reported as new rather than as an error.

    Raises:
        ClassificationError: a name lookup returned more than one stack
        CloudError: any lookup failure other than not-found
    """
    lookup = stack_id or stack_name
    try:
        stacks = await call_remote(port.describe_stacks, lookup, policy=retry)
    except CloudError as e:
        if e.is_not_found:
            return StackReadiness(exists=False, readiness=Readiness.NEW)
        raise

    if not stacks:
        return StackReadiness(exists=False, readiness=Readiness.NEW)
    if len(stacks) > 1:
        raise ClassificationError(
            f"looking up '{lookup}' returned {len(stacks)} stacks, expected one"
        )

    stack = stacks[0]
    return StackReadiness(
        exists=True,
        readiness=classify_status(stack.status),
        status=stack.status,
        stack=stack,
    )

"""Resource listing across stacks."""

from __future__ import annotations

from .exports import find_stacks
from .models import StackResource
from .port import CloudFormationPort
from .retry import DEFAULT_RETRY, RetryPolicy, call_remote


async def list_resources(
    port: CloudFormationPort,
    pattern: str | None = None,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> list[StackResource]:
    """Resources of every stack matching ``pattern`` (exact name or ``*`` glob)."""
    resources: list[StackResource] = []
    for stack in await find_stacks(port, pattern, retry):
        resources.extend(
            await call_remote(port.describe_stack_resources, stack.name, policy=retry)
        )
    return resources

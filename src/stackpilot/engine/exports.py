"""
Export/import resolution across stacks.

Finds the exports of one or more stacks and asks the provider which
stacks import each of them. The import lookups are independent, so they
run concurrently behind a semaphore to stay under the provider's rate
limit.
"""

from __future__ import annotations

import asyncio
import logging

from .errors import CloudError
from .models import Export, StackSnapshot
from .naming import has_glob, matches_stack_pattern
from .port import CloudFormationPort
from .retry import DEFAULT_RETRY, RetryPolicy, call_remote

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 8


async def find_stacks(
    port: CloudFormationPort,
    pattern: str | None = None,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> list[StackSnapshot]:
    """
    Describe the stacks matching an exact name or a ``*`` glob.

    Exact names are passed to the provider as a filter; globs fetch every
    stack and filter locally.
    """
    if pattern and not has_glob(pattern):
        return await call_remote(port.describe_stacks, pattern, policy=retry)
    stacks = await call_remote(port.describe_stacks, None, policy=retry)
    if not pattern:
        return stacks
    return [stack for stack in stacks if matches_stack_pattern(pattern, stack.name)]


def collect_exports(stacks: list[StackSnapshot], export_name: str | None = None) -> list[Export]:
    exports: list[Export] = []
    for stack in stacks:
        for output in stack.exports:
            if export_name and output.export_name != export_name:
                continue
            exports.append(
                Export(
                    name=output.export_name,
                    value=output.value,
                    stack_name=stack.name,
                    output_key=output.key,
                    description=output.description,
                )
            )
    return exports


async def resolve_importers(
    port: CloudFormationPort,
    export: Export,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> Export:
    """Fill in ``export.importers``; lookup failures leave it not imported."""
    importers: list[str] = []
    next_token: str | None = None
    try:
        while True:
            page = await call_remote(port.list_imports, export.name, next_token, policy=retry)
            importers.extend(page.stack_names)
            if not page.next_token:
                break
            next_token = page.next_token
    except CloudError as e:
        export.imported = False
        export.importers = []
        if not e.is_not_found:
            logger.warning(f"Could not list imports of {export.name}: {e}")
        return export

    export.importers = importers
    export.imported = bool(importers)
    return export


async def resolve_all(
    port: CloudFormationPort,
    exports: list[Export],
    retry: RetryPolicy = DEFAULT_RETRY,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[Export]:
    """Resolve importers for every export concurrently; output order matches input."""
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def bounded(export: Export) -> Export:
        async with semaphore:
            return await resolve_importers(port, export, retry)

    return list(await asyncio.gather(*(bounded(export) for export in exports)))


async def list_exports(
    port: CloudFormationPort,
    stack_pattern: str | None = None,
    export_name: str | None = None,
    retry: RetryPolicy = DEFAULT_RETRY,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[Export]:
    """
    Exports of every matching stack, each with its importers populated.

    The result has one entry per discovered export, in discovery order.
    """
    stacks = await find_stacks(port, stack_pattern, retry)
    exports = collect_exports(stacks, export_name)
    return await resolve_all(port, exports, retry, concurrency)


async def blast_radius(
    port: CloudFormationPort,
    stack_name: str,
    retry: RetryPolicy = DEFAULT_RETRY,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[str]:
    """Names of the stacks that import any export of ``stack_name``."""
    exports = await list_exports(port, stack_name, retry=retry, concurrency=concurrency)
    importers = {name for export in exports for name in export.importers}
    return sorted(importers)

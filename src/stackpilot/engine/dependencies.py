"""Cross-stack dependency listing built on the export resolver."""

from __future__ import annotations

from dataclasses import dataclass, field

from .exports import DEFAULT_CONCURRENCY, collect_exports, find_stacks, resolve_all
from .naming import matches_stack_pattern
from .port import CloudFormationPort
from .retry import DEFAULT_RETRY, RetryPolicy


@dataclass
class StackDependency:
    name: str
    description: str = ""
    imported_by: list[str] = field(default_factory=list)


def filter_dependencies(
    pattern: str, dependencies: dict[str, StackDependency]
) -> list[str]:
    """
    Names of the stacks relevant to ``pattern``.

    Keeps every matching stack, recursively the stacks importing from it,
    and every stack that a matching stack imports from.
    """
    selected: set[str] = set()

    def include_with_importers(name: str) -> None:
        if name in selected or name not in dependencies:
            return
        selected.add(name)
        for importer in dependencies[name].imported_by:
            include_with_importers(importer)

    for name, dependency in dependencies.items():
        if matches_stack_pattern(pattern, name):
            include_with_importers(name)
        elif any(matches_stack_pattern(pattern, importer) for importer in dependency.imported_by):
            selected.add(name)
    return sorted(selected)


async def stack_dependencies(
    port: CloudFormationPort,
    pattern: str | None = None,
    retry: RetryPolicy = DEFAULT_RETRY,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[StackDependency]:
    """Every stack (or those relevant to ``pattern``) with the stacks importing from it."""
    stacks = await find_stacks(port, None, retry)
    exports = await resolve_all(port, collect_exports(stacks), retry, concurrency)

    dependencies = {
        stack.name: StackDependency(name=stack.name, description=stack.description)
        for stack in stacks
    }
    for export in exports:
        dependency = dependencies[export.stack_name]
        for importer in export.importers:
            if importer not in dependency.imported_by:
                dependency.imported_by.append(importer)
    for dependency in dependencies.values():
        dependency.imported_by.sort()

    names = filter_dependencies(pattern, dependencies) if pattern else sorted(dependencies)
    return [dependencies[name] for name in names]

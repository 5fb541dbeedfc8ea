"""
Loading deployment inputs from disk.

Templates, parameter files, tag files and deployment files are looked up
as given first, then inside their configured directory (relative to the
configured root directory), trying each configured extension in turn.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from .config import Settings
from .engine.errors import ConfigurationError
from .engine.models import Parameter, Tag
from .engine.naming import render_placeholders

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedFile:
    path: Path
    relative_path: str
    content: str


@dataclass
class DeploymentFile:
    """A YAML or JSON file bundling the template path, parameters and tags."""

    template_file_path: str = ""
    parameters: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)


# =============================================================================
# Lookup
# =============================================================================


def find_file(name: str, directory: str, extensions: Iterable[str], rootdir: Path) -> Path:
    """
    Resolve ``name`` to an existing file.

    Raises:
        ConfigurationError: nothing matched
    """
    extensions = list(extensions) or [""]
    bases = [Path(name), rootdir / directory / name]
    for base in bases:
        for extension in extensions:
            candidate = base.with_name(base.name + extension)
            if candidate.is_file():
                return candidate
    raise ConfigurationError(f"could not find '{name}' (looked in . and {rootdir / directory})")


def _relative(path: Path, rootdir: Path) -> str:
    try:
        return str(path.resolve().relative_to(rootdir.resolve()))
    except ValueError:
        return str(path)


def read_file(name: str, directory: str, extensions: Iterable[str], rootdir: Path) -> LoadedFile:
    path = find_file(name, directory, extensions, rootdir)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"could not read '{path}': {e}") from e
    logger.debug(f"Loaded {path}")
    return LoadedFile(path=path, relative_path=_relative(path, rootdir), content=content)


def read_template(name: str, settings: Settings) -> LoadedFile:
    templates = settings.templates
    return read_file(name, templates.directory, templates.extensions, settings.rootdir)


# =============================================================================
# Parameters and tags
# =============================================================================


def _load_json_list(content: str, source: str, kind: str) -> list[dict[str, Any]]:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"could not parse the {kind} file '{source}': {e}") from e
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ConfigurationError(f"the {kind} file '{source}' must contain a list of objects")
    return data


def parse_parameters(content: str, source: str = "<string>") -> list[Parameter]:
    """Parse a JSON list of ``{"ParameterKey": ..., "ParameterValue": ...}`` objects."""
    parameters = []
    for item in _load_json_list(content, source, "parameters"):
        if "ParameterKey" not in item:
            raise ConfigurationError(f"a parameter in '{source}' has no ParameterKey")
        parameters.append(
            Parameter(
                key=item["ParameterKey"],
                value=str(item.get("ParameterValue", "")),
                use_previous_value=bool(item.get("UsePreviousValue", False)),
            )
        )
    return parameters


def parse_tags(content: str, source: str = "<string>") -> list[Tag]:
    """Parse a JSON list of ``{"Key": ..., "Value": ...}`` objects."""
    tags = []
    for item in _load_json_list(content, source, "tags"):
        if "Key" not in item:
            raise ConfigurationError(f"a tag in '{source}' has no Key")
        tags.append(Tag(key=item["Key"], value=str(item.get("Value", ""))))
    return tags


def merge_parameters(*groups: Iterable[Parameter]) -> list[Parameter]:
    """Merge parameter lists; a later value for the same key wins."""
    merged: dict[str, Parameter] = {}
    for group in groups:
        for parameter in group:
            merged[parameter.key] = parameter
    return list(merged.values())


def merge_tags(*groups: Iterable[Tag]) -> list[Tag]:
    """Merge tag lists; a later value for the same key wins."""
    merged: dict[str, Tag] = {}
    for group in groups:
        for tag in group:
            merged[tag.key] = tag
    return list(merged.values())


def load_parameter_files(names: Iterable[str], settings: Settings) -> list[Parameter]:
    config = settings.parameters
    groups = []
    for name in names:
        loaded = read_file(name, config.directory, config.extensions, settings.rootdir)
        groups.append(parse_parameters(loaded.content, str(loaded.path)))
    return merge_parameters(*groups)


def load_tag_files(names: Iterable[str], settings: Settings) -> list[Tag]:
    config = settings.tags
    groups = []
    for name in names:
        loaded = read_file(name, config.directory, config.extensions, settings.rootdir)
        groups.append(parse_tags(loaded.content, str(loaded.path)))
    return merge_tags(*groups)


def default_tags(
    settings: Settings,
    template_path: str | None = None,
    now: datetime | None = None,
) -> list[Tag]:
    """Tags from ``[tags.default]`` with placeholders filled in."""
    return [
        Tag(
            key=key,
            value=render_placeholders(
                value,
                template_path=template_path,
                now=now,
                timezone=settings.changeset.timezone,
            ),
        )
        for key, value in settings.tags.default.items()
    ]


# =============================================================================
# Deployment files
# =============================================================================


def parse_deployment_file(content: str, source: str = "<string>") -> DeploymentFile:
    """Parse a deployment file; JSON is accepted since it is valid YAML."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"could not parse the deployment file '{source}': {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"the deployment file '{source}' must contain a mapping")

    def string_map(key: str) -> dict[str, str]:
        value = data.get(key) or {}
        if not isinstance(value, dict):
            raise ConfigurationError(f"'{key}' in '{source}' must be a mapping")
        return {str(k): str(v) for k, v in value.items()}

    return DeploymentFile(
        template_file_path=str(data.get("template-file-path", "")),
        parameters=string_map("parameters"),
        tags=string_map("tags"),
    )


def load_deployment_file(name: str, settings: Settings) -> DeploymentFile:
    loaded = read_file(
        name, settings.templates.directory, [".yaml", ".yml", ".json", ""], settings.rootdir
    )
    return parse_deployment_file(loaded.content, str(loaded.path))

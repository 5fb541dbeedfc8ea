"""
Names, patterns and console links.

Pure helpers with no remote calls: console URL generation and parsing,
stack name canonicalisation, glob filters for stack names, and the
placeholder substitution used for change set names and default tags.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, tzinfo
from pathlib import Path
from urllib.parse import parse_qs, unquote, urlsplit
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigurationError

CONSOLE_BASE = "https://console.aws.amazon.com/cloudformation/home"
CHANGESET_FRAGMENT = "#/stacks/changesets/changes"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"
DEFAULT_CHANGE_SET_NAME_FORMAT = "stackpilot-$TIMESTAMP"


# =============================================================================
# Console URLs
# =============================================================================


def changeset_console_url(region: str, stack_id: str, change_set_id: str) -> str:
    """Build the console link for reviewing a change set."""
    return (
        f"{CONSOLE_BASE}?region={region}{CHANGESET_FRAGMENT}"
        f"?stackId={stack_id}&changeSetId={change_set_id}"
    )


def parse_changeset_console_url(url: str, region: str) -> tuple[str, str]:
    """
    Extract (stack_id, change_set_id) from a console change set link.

    Accepts links copied from a browser (percent-encoded) or from a shell
    (backslash-escaped). Missing values come back as empty strings.
    """
    decoded = unquote(url).replace("\\", "")
    decoded = decoded.replace(f"?region={region}{CHANGESET_FRAGMENT}", "", 1)
    query = parse_qs(urlsplit(decoded).query)
    stack_id = query.get("stackId", [""])[0]
    change_set_id = query.get("changeSetId", [""])[0]
    return stack_id, change_set_id


# =============================================================================
# Stack names and patterns
# =============================================================================


def canonical_stack_name(name_or_arn: str) -> str:
    """Reduce a stack ARN to its name; plain names pass through."""
    if name_or_arn.startswith("arn:"):
        return name_or_arn.split("/")[1]
    return name_or_arn


def has_glob(pattern: str) -> bool:
    return "*" in pattern


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a stack name glob: ``*`` matches anything, the rest is literal."""
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile("^" + ".*".join(parts) + "$")


def matches_stack_pattern(pattern: str, name: str) -> bool:
    if not has_glob(pattern):
        return pattern == name
    return glob_to_regex(pattern).match(name) is not None


# =============================================================================
# Placeholders
# =============================================================================


def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"unknown timezone '{name}'") from e


def render_placeholders(
    template: str,
    *,
    template_path: str | Path | None = None,
    now: datetime | None = None,
    timezone: str = "UTC",
) -> str:
    """
    Substitute ``$TEMPLATEPATH`` and ``$TIMESTAMP`` in a configured value.

    ``$TIMESTAMP`` renders as ``YYYY-MM-DDTHH-MM-SS`` in the given timezone,
    which keeps it valid inside change set names.
    """
    value = template
    if template_path is not None:
        value = value.replace("$TEMPLATEPATH", str(template_path))
    if "$TIMESTAMP" in value:
        moment = now or datetime.now(UTC)
        stamp = moment.astimezone(resolve_timezone(timezone)).strftime(TIMESTAMP_FORMAT)
        value = value.replace("$TIMESTAMP", stamp)
    return value


def default_change_set_name(
    name_format: str = DEFAULT_CHANGE_SET_NAME_FORMAT,
    *,
    now: datetime | None = None,
    timezone: str = "UTC",
) -> str:
    return render_placeholders(name_format, now=now, timezone=timezone)

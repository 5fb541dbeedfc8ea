"""
Template prechecks.

Runs the commands configured under ``[templates] prechecks`` (cfn-lint,
checkov, ...) against the template before a change set is created. Any
failing command marks the deployment's prechecks as failed; whether that
stops the deployment is up to ``stop_on_failed_prechecks``.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import StrEnum

from .engine.errors import ConfigurationError

logger = logging.getLogger(__name__)

UNSAFE_COMMANDS = frozenset({"rm", "del", "kill"})
DEFAULT_TIMEOUT = 120


class PrecheckStatus(StrEnum):
    PASSED = "passed"
    FAILED = "failed"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"


@dataclass
class PrecheckResult:
    command: str
    status: PrecheckStatus
    output: str = ""

    @property
    def passed(self) -> bool:
        return self.status == PrecheckStatus.PASSED


@dataclass
class PrecheckReport:
    results: list[PrecheckResult] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return any(not result.passed for result in self.results)

    @property
    def failures(self) -> list[PrecheckResult]:
        return [result for result in self.results if not result.passed]


def run_precheck(command: str, timeout: int = DEFAULT_TIMEOUT) -> PrecheckResult:
    """Run a single precheck command and capture its output."""
    args = shlex.split(command)
    if not args:
        raise ConfigurationError("empty precheck command")
    if args[0] in UNSAFE_COMMANDS:
        raise ConfigurationError(f"unsafe precheck command '{args[0]}'")

    binary = shutil.which(args[0])
    if binary is None:
        return PrecheckResult(
            command=command,
            status=PrecheckStatus.NOT_FOUND,
            output=f"command '{args[0]}' cannot be found",
        )

    try:
        completed = subprocess.run(
            [binary, *args[1:]],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return PrecheckResult(
            command=command,
            status=PrecheckStatus.TIMEOUT,
            output=f"timed out after {timeout}s",
        )

    if completed.returncode != 0:
        logger.info(f"Precheck failed ({completed.returncode}): {command}")
        return PrecheckResult(
            command=command,
            status=PrecheckStatus.FAILED,
            output=(completed.stderr + completed.stdout).strip(),
        )
    return PrecheckResult(command=command, status=PrecheckStatus.PASSED)


def run_prechecks(
    commands: list[str],
    template_path: str,
    timeout: int = DEFAULT_TIMEOUT,
) -> PrecheckReport:
    """Run every configured precheck with ``$TEMPLATEPATH`` substituted."""
    report = PrecheckReport()
    for command in commands:
        rendered = command.replace("$TEMPLATEPATH", template_path)
        report.results.append(run_precheck(rendered, timeout))
    return report

"""
Drift detection for a single stack.

Starts a detection run, waits for it to finish, then gathers the
per-resource drift records. Resources that CloudFormation can't check for
drift have no record at all; they are reported separately as unchecked.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from .changesets import PollSettings
from .errors import CloudError, ErrorKind
from .models import StackResource
from .port import CloudFormationPort, DriftDetection, ResourceDrift
from .retry import DEFAULT_RETRY, RetryPolicy, call_remote

logger = logging.getLogger(__name__)

DETECTION_IN_PROGRESS = "DETECTION_IN_PROGRESS"
IN_SYNC = "IN_SYNC"


@dataclass
class DriftReport:
    stack_name: str
    detection_status: str
    stack_drift_status: str = ""
    drifted_count: int = 0
    drifts: list[ResourceDrift] = field(default_factory=list)
    unchecked: list[StackResource] = field(default_factory=list)

    @property
    def drifted(self) -> list[ResourceDrift]:
        return [drift for drift in self.drifts if drift.drift_status != IN_SYNC]


async def wait_for_detection(
    port: CloudFormationPort,
    detection_id: str,
    poll: PollSettings | None = None,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> DriftDetection:
    poll = poll or PollSettings()
    delays = poll.delays()
    try:
        async with asyncio.timeout(poll.timeout):
            while True:
                detection = await call_remote(
                    port.describe_stack_drift_detection_status, detection_id, policy=retry
                )
                if detection.detection_status != DETECTION_IN_PROGRESS:
                    return detection
                await asyncio.sleep(next(delays))
    except TimeoutError as e:
        raise CloudError(
            ErrorKind.DEADLINE_EXCEEDED,
            f"drift detection {detection_id} did not finish within {poll.timeout}s",
            operation="DescribeStackDriftDetectionStatus",
        ) from e


async def resource_drifts(
    port: CloudFormationPort,
    stack_name: str,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> list[ResourceDrift]:
    drifts: list[ResourceDrift] = []
    next_token: str | None = None
    while True:
        page = await call_remote(
            port.describe_stack_resource_drifts, stack_name, next_token, policy=retry
        )
        drifts.extend(page.drifts)
        if not page.next_token:
            return drifts
        next_token = page.next_token


async def detect_drift(
    port: CloudFormationPort,
    stack_name: str,
    poll: PollSettings | None = None,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> DriftReport:
    """Run drift detection on ``stack_name`` and collect the results."""
    detection_id = await call_remote(port.detect_stack_drift, stack_name, policy=retry)
    logger.info(f"Started drift detection {detection_id} for {stack_name}")
    detection = await wait_for_detection(port, detection_id, poll, retry)

    drifts = await resource_drifts(port, stack_name, retry)
    checked = {drift.logical_id for drift in drifts}
    resources = await call_remote(port.describe_stack_resources, stack_name, policy=retry)
    unchecked = [resource for resource in resources if resource.logical_id not in checked]

    return DriftReport(
        stack_name=stack_name,
        detection_status=detection.detection_status,
        stack_drift_status=detection.stack_drift_status,
        drifted_count=detection.drifted_resource_count,
        drifts=drifts,
        unchecked=unchecked,
    )

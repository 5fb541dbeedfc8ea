"""
Stack event correlation.

Stack events come back newest-first. Everything here filters against a
watermark (normally the change set creation time) so only events caused
by the current deployment are considered.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta

from .models import StackEvent
from .port import CloudFormationPort
from .retry import DEFAULT_RETRY, RetryPolicy, call_remote

logger = logging.getLogger(__name__)

ExecutionTimes = dict[str, dict[str, datetime]]


def resource_key(event: StackEvent) -> str:
    return f"{event.resource_type} ({event.logical_id})"


async def fetch_events_since(
    port: CloudFormationPort,
    stack_name: str,
    watermark: datetime,
    retry: RetryPolicy = DEFAULT_RETRY,
) -> list[StackEvent]:
    """
    Fetch events at or after ``watermark``, newest first.

    Paging stops at the first event older than the watermark. A failing
    page aborts the whole fetch.
    """
    events: list[StackEvent] = []
    next_token: str | None = None
    while True:
        page = await call_remote(port.describe_stack_events, stack_name, next_token, policy=retry)
        for event in page.events:
            if event.timestamp < watermark:
                return events
            events.append(event)
        if not page.next_token:
            return events
        next_token = page.next_token


def correlate(events: Iterable[StackEvent], watermark: datetime) -> ExecutionTimes:
    """
    Group events per resource and status.

    Events must be given newest-first: the first sighting of a status for a
    resource is kept. Events before the watermark are ignored.
    """
    result: ExecutionTimes = {}
    for event in events:
        if event.timestamp < watermark:
            continue
        statuses = result.setdefault(resource_key(event), {})
        statuses.setdefault(event.status, event.timestamp)
    return result


def resource_durations(timings: ExecutionTimes) -> dict[str, timedelta]:
    """Time from the earliest in-progress status to the latest terminal one, per resource."""
    durations: dict[str, timedelta] = {}
    for key, statuses in timings.items():
        started = [ts for status, ts in statuses.items() if status.endswith("_IN_PROGRESS")]
        finished = [ts for status, ts in statuses.items() if not status.endswith("_IN_PROGRESS")]
        if started and finished:
            durations[key] = max(finished) - min(started)
    return durations


def failed_events(events: Iterable[StackEvent], since: datetime) -> list[StackEvent]:
    """Failure events at or after ``since``, oldest first."""
    failures = [event for event in events if event.is_failure and event.timestamp >= since]
    return sorted(failures, key=lambda event: event.timestamp)


class EventTail:
    """
    Incremental reader for a stack's event log.

    Each call to ``poll`` returns only the events not returned before,
    oldest first.

    Usage:
        tail = EventTail(port, "my-stack", since=change_set.creation_time)
        for event in await tail.poll():
            print(event.status)
    """

    def __init__(
        self,
        port: CloudFormationPort,
        stack_name: str,
        since: datetime,
        retry: RetryPolicy = DEFAULT_RETRY,
    ):
        self.port = port
        self.stack_name = stack_name
        self.since = since
        self.marker = since
        self.retry = retry
        self._seen: set[str] = set()
        self.history: list[StackEvent] = []

    async def poll(self) -> list[StackEvent]:
        events = await fetch_events_since(self.port, self.stack_name, self.marker, self.retry)
        fresh: list[StackEvent] = []
        for event in reversed(events):
            event_id = event.event_id or f"{resource_key(event)}|{event.status}|{event.timestamp}"
            if event_id in self._seen:
                continue
            self._seen.add(event_id)
            fresh.append(event)
        if fresh:
            self.marker = max(self.marker, fresh[-1].timestamp)
            self.history.extend(fresh)
            logger.debug(f"{len(fresh)} new events for {self.stack_name}")
        return fresh

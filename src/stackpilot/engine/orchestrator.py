"""
Deployment orchestrator.

Drives one deployment through the change set protocol:

    INIT -> BUILD_CREATE_CS | BUILD_UPDATE_CS -> POLL_CS -> AWAIT_APPROVAL
         -> EXECUTE -> TAIL_EVENTS -> DONE_*

Terminal states are DONE_SUCCESS, DONE_NO_CHANGES, DONE_FAILED, REFUSED
and DECLINED. Engine errors never escape ``deploy``; they are reported on
the DeploymentResult next to the terminal state. Cancellation does
propagate.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from .changesets import (
    ChangeSetOutcome,
    PollSettings,
    change_set_outcome,
    create_change_set,
    delete_change_set,
    execute_change_set,
    wait_for_change_set,
)
from .errors import (
    ChangeSetFailedError,
    CloudError,
    ConfigurationError,
    DeploymentFailedError,
    ErrorKind,
    PrecheckError,
    StackInUseError,
    StackNotReadyError,
    StackpilotError,
)
from .events import EventTail, correlate, failed_events, resource_durations
from .exports import blast_radius
from .models import ChangeSet, Deployment, StackEvent, StackSnapshot
from .port import CloudFormationPort
from .readiness import REVIEW_IN_PROGRESS, Readiness, classify_stack, is_ongoing
from .retry import DEFAULT_RETRY, RetryPolicy, call_remote

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({"CREATE_COMPLETE", "UPDATE_COMPLETE", "IMPORT_COMPLETE"})
FAILED_CREATE_STATUS = "ROLLBACK_COMPLETE"
DELETE_COMPLETE = "DELETE_COMPLETE"
DELETE_FAILED = "DELETE_FAILED"

Approver = Callable[[Deployment, ChangeSet], bool | Awaitable[bool]]
StackConfirmer = Callable[[str], bool | Awaitable[bool]]


class DeployState(StrEnum):
    INIT = "INIT"
    BUILD_CREATE_CS = "BUILD_CREATE_CS"
    BUILD_UPDATE_CS = "BUILD_UPDATE_CS"
    POLL_CS = "POLL_CS"
    AWAIT_APPROVAL = "AWAIT_APPROVAL"
    EXECUTE = "EXECUTE"
    TAIL_EVENTS = "TAIL_EVENTS"
    DONE_SUCCESS = "DONE_SUCCESS"
    DONE_NO_CHANGES = "DONE_NO_CHANGES"
    DONE_FAILED = "DONE_FAILED"
    REFUSED = "REFUSED"
    DECLINED = "DECLINED"


OK_STATES = frozenset({DeployState.DONE_SUCCESS, DeployState.DONE_NO_CHANGES, DeployState.DECLINED})


# =============================================================================
# Results
# =============================================================================


@dataclass
class DeploymentResult:
    """Terminal state of a deployment plus everything observed on the way."""

    state: DeployState
    deployment: Deployment
    change_set: ChangeSet | None = None
    error: StackpilotError | None = None
    executed: bool = False
    execution_times: dict[str, dict[str, datetime]] = field(default_factory=dict)
    failed_events: list[StackEvent] = field(default_factory=list)
    change_set_deleted: bool = False
    stack_deleted: bool = False
    states: list[DeployState] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state in OK_STATES

    @property
    def durations(self) -> dict[str, timedelta]:
        return resource_durations(self.execution_times)

    def summary(self) -> dict[str, Any]:
        return {
            **self.deployment.summary(),
            "state": str(self.state),
            "success": self.success,
            "executed": self.executed,
            "changes": len(self.change_set.changes) if self.change_set else 0,
            "change_set_deleted": self.change_set_deleted,
            "stack_deleted": self.stack_deleted,
            "error": str(self.error) if self.error else None,
        }


@dataclass
class RemovalResult:
    state: DeployState
    stack_name: str
    importers: list[str] = field(default_factory=list)
    error: StackpilotError | None = None
    events: list[StackEvent] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state in OK_STATES


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _utcnow() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Orchestrator
# =============================================================================


class DeploymentOrchestrator:
    """
    Runs deployments against a CloudFormation port.

    Usage:
        orchestrator = DeploymentOrchestrator(port, approve=ask_user)
        result = await orchestrator.deploy(deployment, timeout=900)

    Callbacks may be plain functions or coroutines. Without an ``approve``
    callback every change set is executed; without ``confirm_stack_cleanup``
    empty new stacks are only removed automatically in dry-run mode.
    """

    def __init__(
        self,
        port: CloudFormationPort,
        approve: Approver | None = None,
        on_event: Callable[[StackEvent], None] | None = None,
        on_state: Callable[[DeployState, Deployment], None] | None = None,
        confirm_stack_cleanup: StackConfirmer | None = None,
        poll: PollSettings | None = None,
        retry: RetryPolicy = DEFAULT_RETRY,
        event_poll_interval: float = 3.0,
        stop_on_failed_prechecks: bool = False,
        fanout_concurrency: int = 8,
    ):
        self.port = port
        self.approve = approve
        self.on_event = on_event
        self.on_state = on_state
        self.confirm_stack_cleanup = confirm_stack_cleanup
        self.poll = poll or PollSettings()
        self.retry = retry
        self.event_poll_interval = event_poll_interval
        self.stop_on_failed_prechecks = stop_on_failed_prechecks
        self.fanout_concurrency = fanout_concurrency

    def _enter(self, result: DeploymentResult, state: DeployState) -> None:
        result.state = state
        result.states.append(state)
        logger.debug(f"{result.deployment.stack_name}: {state}")
        if self.on_state:
            self.on_state(state, result.deployment)

    def _finish(
        self,
        result: DeploymentResult,
        state: DeployState,
        error: StackpilotError | None = None,
    ) -> DeploymentResult:
        result.error = error
        self._enter(result, state)
        return result

    async def deploy(self, deployment: Deployment, timeout: float | None = None) -> DeploymentResult:
        """
        Run ``deployment`` to a terminal state.

        Args:
            deployment: The request; mutated as the deploy progresses
            timeout: Overall deadline in seconds

        Returns:
            DeploymentResult; ``error`` is set for failures and refusals
        """
        result = DeploymentResult(state=DeployState.INIT, deployment=deployment)
        try:
            async with asyncio.timeout(timeout):
                return await self._run(deployment, result)
        except TimeoutError:
            message = f"deployment of '{deployment.stack_name}' did not finish within {timeout}s"
            if result.executed:
                logger.warning(
                    f"Deployment of {deployment.stack_name} timed out after the change set "
                    "was executed; CloudFormation keeps applying it"
                )
                message = f"{message}; CloudFormation keeps applying the change set"
            error = CloudError(ErrorKind.DEADLINE_EXCEEDED, message)
            return self._finish(result, DeployState.DONE_FAILED, error)
        except asyncio.CancelledError:
            if result.executed:
                logger.warning(
                    f"Deployment of {deployment.stack_name} was cancelled after the change set "
                    "was executed; CloudFormation keeps applying it"
                )
            raise

    async def _run(self, deployment: Deployment, result: DeploymentResult) -> DeploymentResult:
        self._enter(result, DeployState.INIT)
        if deployment.prechecks_failed and self.stop_on_failed_prechecks:
            return self._finish(
                result,
                DeployState.REFUSED,
                PrecheckError("prechecks failed and stop_on_failed_prechecks is enabled"),
            )

        try:
            change_set = await self._prepare_change_set(deployment, result)
        except (ConfigurationError, StackNotReadyError) as e:
            return self._finish(result, DeployState.REFUSED, e)
        except CloudError as e:
            if e.kind in (ErrorKind.CONFLICT, ErrorKind.ALREADY_EXISTS):
                return self._finish(result, DeployState.REFUSED, e)
            return self._finish(result, DeployState.DONE_FAILED, e)
        except StackpilotError as e:
            return self._finish(result, DeployState.DONE_FAILED, e)

        outcome = change_set_outcome(change_set)
        if outcome == ChangeSetOutcome.EMPTY:
            result.change_set_deleted = await delete_change_set(self.port, change_set, self.retry)
            await self._remove_review_stack(deployment, result, automatic=deployment.dry_run)
            return self._finish(result, DeployState.DONE_NO_CHANGES)
        if outcome == ChangeSetOutcome.FAILED:
            return self._finish(
                result,
                DeployState.DONE_FAILED,
                ChangeSetFailedError(change_set.name, change_set.status_reason),
            )
        if outcome == ChangeSetOutcome.DELETED:
            return self._finish(
                result,
                DeployState.DONE_FAILED,
                CloudError(
                    ErrorKind.NOT_FOUND,
                    f"change set {change_set.name} was deleted before it could be used",
                    operation="DescribeChangeSet",
                ),
            )

        if deployment.dry_run:
            result.change_set_deleted = await delete_change_set(self.port, change_set, self.retry)
            await self._remove_review_stack(deployment, result, automatic=True)
            return self._finish(result, DeployState.DONE_SUCCESS)
        if deployment.create_only:
            return self._finish(result, DeployState.DONE_SUCCESS)

        self._enter(result, DeployState.AWAIT_APPROVAL)
        if self.approve is not None and not await _resolve(self.approve(deployment, change_set)):
            result.change_set_deleted = await delete_change_set(self.port, change_set, self.retry)
            await self._remove_review_stack(deployment, result, automatic=False)
            return self._finish(result, DeployState.DECLINED)

        try:
            self._enter(result, DeployState.EXECUTE)
            await execute_change_set(self.port, change_set, self.retry)
            result.executed = True
            self._enter(result, DeployState.TAIL_EVENTS)
            stack, tail = await self._tail_until_settled(deployment, change_set)
        except CloudError as e:
            if e.kind == ErrorKind.CONFLICT and not result.executed:
                return self._finish(result, DeployState.REFUSED, e)
            return self._finish(result, DeployState.DONE_FAILED, e)

        return await self._conclude(deployment, result, stack, tail)

    async def _prepare_change_set(self, deployment: Deployment, result: DeploymentResult) -> ChangeSet:
        readiness = await classify_stack(
            self.port, deployment.stack_name, deployment.stack_id or None, self.retry
        )
        if not readiness.can_deploy:
            raise StackNotReadyError(deployment.stack_name, readiness.status)
        deployment.is_new = readiness.is_new
        if readiness.stack is not None:
            deployment.stack_id = readiness.stack.stack_id

        build_state = DeployState.BUILD_CREATE_CS if deployment.is_new else DeployState.BUILD_UPDATE_CS
        self._enter(result, build_state)
        created = await create_change_set(self.port, deployment, self.retry)

        self._enter(result, DeployState.POLL_CS)
        change_set = await wait_for_change_set(
            self.port, deployment.lookup_name, created.name, self.poll, self.retry
        )
        if not change_set.change_set_id:
            change_set.change_set_id = created.change_set_id
        if change_set.stack_id:
            deployment.stack_id = change_set.stack_id
        deployment.change_set = change_set
        result.change_set = change_set
        return change_set

    async def _describe(self, stack_name: str) -> StackSnapshot | None:
        try:
            stacks = await call_remote(self.port.describe_stacks, stack_name, policy=self.retry)
        except CloudError as e:
            if e.is_not_found:
                return None
            raise
        return stacks[0] if stacks else None

    async def _tail_until_settled(
        self, deployment: Deployment, change_set: ChangeSet
    ) -> tuple[StackSnapshot | None, EventTail]:
        since = change_set.creation_time or _utcnow()
        tail = EventTail(self.port, deployment.lookup_name, since=since, retry=self.retry)
        while True:
            self._emit(await tail.poll())
            stack = await self._describe(deployment.lookup_name)
            if stack is None or not is_ongoing(stack.status):
                break
            await asyncio.sleep(self.event_poll_interval)
        # Events can land after the status flips.
        self._emit(await tail.poll())
        return stack, tail

    def _emit(self, events: list[StackEvent]) -> None:
        if self.on_event:
            for event in events:
                self.on_event(event)

    async def _conclude(
        self,
        deployment: Deployment,
        result: DeploymentResult,
        stack: StackSnapshot | None,
        tail: EventTail,
    ) -> DeploymentResult:
        deployment.final_stack = stack
        result.execution_times = correlate(reversed(tail.history), tail.since)
        result.failed_events = failed_events(tail.history, tail.since)

        status = stack.status if stack else DELETE_COMPLETE
        if status in SUCCESS_STATUSES:
            return self._finish(result, DeployState.DONE_SUCCESS)

        reason = stack.status_reason if stack else ""
        if deployment.is_new and status == FAILED_CREATE_STATUS:
            result.stack_deleted = await self._offer_stack_removal(deployment)
        return self._finish(
            result,
            DeployState.DONE_FAILED,
            DeploymentFailedError(deployment.stack_name, status, reason),
        )

    # =========================================================================
    # New stack cleanup
    # =========================================================================

    async def _remove_review_stack(
        self, deployment: Deployment, result: DeploymentResult, automatic: bool
    ) -> None:
        """Remove a new stack that only exists because of our change set."""
        if not deployment.is_new:
            return
        try:
            stack = await self._describe(deployment.lookup_name)
        except CloudError as e:
            logger.warning(f"Could not check whether {deployment.stack_name} is empty: {e}")
            return
        if stack is None or stack.status != REVIEW_IN_PROGRESS:
            return
        if automatic:
            result.stack_deleted = await self._delete_stack(deployment.lookup_name)
        else:
            result.stack_deleted = await self._offer_stack_removal(deployment)

    async def _offer_stack_removal(self, deployment: Deployment) -> bool:
        if self.confirm_stack_cleanup is None:
            return False
        if not await _resolve(self.confirm_stack_cleanup(deployment.stack_name)):
            return False
        return await self._delete_stack(deployment.lookup_name)

    async def _delete_stack(self, stack_name: str) -> bool:
        try:
            await call_remote(self.port.delete_stack, stack_name, policy=self.retry)
        except CloudError as e:
            logger.warning(f"Could not delete stack {stack_name}: {e}")
            return False
        return True

    # =========================================================================
    # Stack removal
    # =========================================================================

    async def remove_stack(
        self,
        stack_name: str,
        approve: StackConfirmer | None = None,
        timeout: float | None = None,
    ) -> RemovalResult:
        """
        Delete a stack unless other stacks still import its exports.

        Refuses when the stack doesn't exist, is busy, or is imported from.
        Tails the stack's events until it is gone.
        """
        result = RemovalResult(state=DeployState.INIT, stack_name=stack_name)
        try:
            async with asyncio.timeout(timeout):
                return await self._remove(stack_name, approve, result)
        except TimeoutError:
            result.state = DeployState.DONE_FAILED
            result.error = CloudError(
                ErrorKind.DEADLINE_EXCEEDED,
                f"removal of '{stack_name}' did not finish within {timeout}s",
            )
            return result
        except CloudError as e:
            result.state = DeployState.DONE_FAILED
            result.error = e
            return result

    async def _remove(
        self, stack_name: str, approve: StackConfirmer | None, result: RemovalResult
    ) -> RemovalResult:
        readiness = await classify_stack(self.port, stack_name, retry=self.retry)
        if not readiness.exists or readiness.stack is None:
            result.state = DeployState.REFUSED
            result.error = CloudError(
                ErrorKind.NOT_FOUND, f"the stack '{stack_name}' does not exist", "DescribeStacks"
            )
            return result
        if readiness.readiness == Readiness.BUSY:
            result.state = DeployState.REFUSED
            result.error = StackNotReadyError(stack_name, readiness.status)
            return result

        stack = readiness.stack
        importers = await blast_radius(
            self.port, stack.name, self.retry, concurrency=self.fanout_concurrency
        )
        result.importers = [name for name in importers if name != stack.name]
        if result.importers:
            result.state = DeployState.REFUSED
            result.error = StackInUseError(stack.name, result.importers)
            return result

        if approve is not None and not await _resolve(approve(stack.name)):
            result.state = DeployState.DECLINED
            return result

        since = _utcnow()
        await call_remote(self.port.delete_stack, stack.stack_id, policy=self.retry)
        tail = EventTail(self.port, stack.stack_id, since=since, retry=self.retry)
        while True:
            try:
                events = await tail.poll()
            except CloudError as e:
                if not e.is_not_found:
                    raise
                events = []
            self._emit(events)
            current = await self._describe(stack.stack_id)
            if current is None or not is_ongoing(current.status):
                break
            await asyncio.sleep(self.event_poll_interval)

        result.events = list(tail.history)
        if current is not None and current.status == DELETE_FAILED:
            result.state = DeployState.DONE_FAILED
            result.error = DeploymentFailedError(stack.name, current.status, current.status_reason)
        else:
            result.state = DeployState.DONE_SUCCESS
        return result

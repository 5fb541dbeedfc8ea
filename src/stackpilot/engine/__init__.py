"""
stackpilot engine - the CloudFormation deployment lifecycle.

Talks to CloudFormation only through a CloudFormationPort:
- readiness: is a stack new, updatable or busy
- changesets: create, poll, page and inspect change sets
- events: correlate stack events after a watermark
- exports: resolve which stacks import an export
- report: past deployments rebuilt from the event log
- orchestrator: the deploy state machine tying these together

Usage:
    async with AioBotoCloudFormation(session, region) as port:
        orchestrator = DeploymentOrchestrator(port)
        result = await orchestrator.deploy(deployment)
"""

from .boto_port import AioBotoCloudFormation, translate_client_error
from .changesets import (
    ChangeSetOutcome,
    PollSettings,
    change_set_outcome,
    describe_change_set,
    is_no_changes_reason,
    summarize_changes,
    wait_for_change_set,
)
from .dependencies import StackDependency, stack_dependencies
from .drift import DriftReport, detect_drift
from .errors import (
    ChangeSetFailedError,
    ClassificationError,
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
from .exports import blast_radius, list_exports
from .models import (
    ChangeDetail,
    ChangeSet,
    Deployment,
    Export,
    Parameter,
    ResourceChange,
    StackEvent,
    StackOutput,
    StackResource,
    StackSnapshot,
    Tag,
    TemplateSource,
)
from .orchestrator import DeploymentOrchestrator, DeploymentResult, DeployState, RemovalResult
from .port import CloudFormationPort
from .readiness import Readiness, StackReadiness, classify_stack, classify_status
from .report import DeploymentRecord, deployment_history, deployment_report
from .resources import list_resources
from .retry import RetryPolicy, call_remote

__all__ = [
    # Port
    "CloudFormationPort",
    "AioBotoCloudFormation",
    "translate_client_error",
    "RetryPolicy",
    "call_remote",
    # Errors
    "StackpilotError",
    "CloudError",
    "ErrorKind",
    "ConfigurationError",
    "ClassificationError",
    "StackNotReadyError",
    "ChangeSetFailedError",
    "DeploymentFailedError",
    "PrecheckError",
    "StackInUseError",
    # Models
    "Deployment",
    "TemplateSource",
    "Parameter",
    "Tag",
    "ChangeSet",
    "ResourceChange",
    "ChangeDetail",
    "StackSnapshot",
    "StackOutput",
    "StackEvent",
    "StackResource",
    "Export",
    # Readiness
    "Readiness",
    "StackReadiness",
    "classify_stack",
    "classify_status",
    # Change sets
    "ChangeSetOutcome",
    "PollSettings",
    "change_set_outcome",
    "describe_change_set",
    "is_no_changes_reason",
    "summarize_changes",
    "wait_for_change_set",
    # Events
    "EventTail",
    "correlate",
    "failed_events",
    "resource_durations",
    # Inspection
    "list_exports",
    "blast_radius",
    "StackDependency",
    "stack_dependencies",
    "list_resources",
    "DriftReport",
    "detect_drift",
    "DeploymentRecord",
    "deployment_history",
    "deployment_report",
    # Orchestration
    "DeploymentOrchestrator",
    "DeploymentResult",
    "DeployState",
    "RemovalResult",
]

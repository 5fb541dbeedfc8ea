"""User-facing messages printed by the CLI."""

from __future__ import annotations

from enum import StrEnum


class ChangeSetText(StrEnum):
    AUTO_DELETE = "Non-interactive mode: automatically deleting the change set."
    AUTO_DEPLOY = "Non-interactive mode: automatically deploying the change set."
    CONSOLE = "To review the change set in the console, go to"
    CREATION_FAILED = "Something went wrong when trying to create the change set"
    DELETE_CONFIRM = "Do you want to delete this change set?"
    DEPLOY_CONFIRM = "Do you want to deploy this change set?"
    WILL_DEPLOY = "OK. Deploying this change set."
    WILL_DELETE = "OK. Deleting this change set."
    KEPT = "The change set has been left in place."
    DRYRUN_DELETE = "Dry run: the change set has been deleted."
    DRYRUN_SUCCESS = "Dry run: change set has been successfully created."
    CREATED = "Change set has been successfully created."
    NO_CHANGES = "No changes have been found in the change set for {stack}"
    NO_RESOURCE_CHANGES = (
        "No changes to resources have been found, but there are still changes to other parts of the stack"
    )
    CHANGES = "Changes found in change set"
    DANGEROUS = "Some changes may replace existing resources; check the Danger column."


class StackText(StrEnum):
    NEW_STACK_DELETE_INFO = (
        "It looks like this was a new stack and doesn't have any resources. "
        "You can't deploy a stack with the same name until this one has been deleted."
    )
    NEW_STACK_DELETE_CONFIRM = "Do you want to delete the empty stack {stack}?"
    NEW_STACK_DELETED = "The empty stack has been deleted. You can try to deploy it again."
    SUCCESS = "Deployment completed successfully."
    FAILED = "The deployment had a problem, see the failed events below for what happened."
    DELETE_CONFIRM = "Do you want to delete the stack {stack}?"
    DELETED = "Stack {stack} has been deleted."
    DECLINED = "OK. Nothing has been changed."
    NO_DEPLOYMENTS = "No finished deployments found."


class FileText(StrEnum):
    PRECHECK_STARTED = "Running {count} prechecks..."
    PRECHECK_SUCCESS = "All prechecks finished successfully"
    PRECHECK_FAILURE_STOP = (
        "Issues detected during prechecks, stopping deployment. "
        "Please read the output below and fix them before trying again"
    )
    PRECHECK_FAILURE_CONTINUE = "Issues detected during prechecks, continuing regardless"
    UPLOADED = "Template uploaded to {url}"

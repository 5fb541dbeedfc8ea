"""Tests for stackpilot engine models and errors."""

from __future__ import annotations

import pytest
from fakes import make_change, make_change_set

from stackpilot.engine.errors import (
    CloudError,
    ConfigurationError,
    DeploymentFailedError,
    ErrorKind,
    StackInUseError,
    StackNotReadyError,
)
from stackpilot.engine.models import (
    ChangeDetail,
    ChangeSetType,
    Deployment,
    Parameter,
    StackOutput,
    StackSnapshot,
    Tag,
    TemplateSource,
    TemplateSourceKind,
)

# =============================================================================
# Errors
# =============================================================================


class TestErrors:
    """Tests for the error hierarchy."""

    def test_cloud_error_keeps_provider_message(self) -> None:
        error = CloudError(ErrorKind.NOT_FOUND, "Stack with id web does not exist", "DescribeStacks")
        assert error.message == "Stack with id web does not exist"
        assert str(error) == "DescribeStacks: Stack with id web does not exist"
        assert error.is_not_found
        assert not error.is_throttling

    def test_cloud_error_without_operation(self) -> None:
        assert str(CloudError(ErrorKind.THROTTLED, "Rate exceeded")) == "Rate exceeded"

    def test_configuration_error_is_validation(self) -> None:
        assert ConfigurationError("bad").kind == ErrorKind.VALIDATION

    def test_stack_not_ready_message(self) -> None:
        error = StackNotReadyError("web", "UPDATE_IN_PROGRESS")
        assert str(error) == (
            "the stack 'web' is currently in status UPDATE_IN_PROGRESS and can't be updated"
        )

    def test_stack_in_use_lists_importers(self) -> None:
        error = StackInUseError("network", ["app", "db"])
        assert error.kind == ErrorKind.CONFLICT
        assert "app, db" in str(error)

    def test_deployment_failed_includes_reason(self) -> None:
        error = DeploymentFailedError("web", "UPDATE_ROLLBACK_COMPLETE", "Bucket exists")
        assert str(error).endswith("UPDATE_ROLLBACK_COMPLETE: Bucket exists")


# =============================================================================
# Template sources
# =============================================================================


class TestTemplateSource:
    """Exactly one template source is set."""

    def test_inline(self) -> None:
        source = TemplateSource.inline("Resources: {}")
        assert source.kind == TemplateSourceKind.BODY
        assert source.body == "Resources: {}"

    def test_remote(self) -> None:
        source = TemplateSource.remote("https://bucket.s3.amazonaws.com/t.yaml")
        assert source.kind == TemplateSourceKind.URL

    def test_default_is_none(self) -> None:
        assert TemplateSource.none().kind == TemplateSourceKind.NONE

    def test_inline_needs_body(self) -> None:
        with pytest.raises(ConfigurationError):
            TemplateSource(kind=TemplateSourceKind.BODY)

    def test_body_and_url_are_exclusive(self) -> None:
        with pytest.raises(ConfigurationError):
            TemplateSource(kind=TemplateSourceKind.URL, url="https://x", body="Resources: {}")

    def test_previous_takes_no_body(self) -> None:
        with pytest.raises(ConfigurationError):
            TemplateSource(kind=TemplateSourceKind.PREVIOUS, body="Resources: {}")


# =============================================================================
# Changes and change sets
# =============================================================================


class TestResourceChange:
    """Danger detection on change details."""

    def test_never_recreated_is_safe(self) -> None:
        change = make_change("Bucket", requires_recreation="Never")
        assert not change.is_dangerous
        assert change.danger_details() == []

    @pytest.mark.parametrize("requires_recreation", ["Always", "Conditionally"])
    def test_recreation_is_dangerous(self, requires_recreation: str) -> None:
        change = make_change("Bucket", requires_recreation=requires_recreation)
        assert change.is_dangerous
        assert change.danger_details() == ["Static: Properties - BucketName"]

    def test_only_dangerous_details_are_listed(self) -> None:
        change = make_change("Bucket")
        change.details.append(
            ChangeDetail(
                evaluation="Dynamic",
                attribute="Tags",
                requires_recreation="Always",
                causing_entity="Env",
            )
        )
        assert change.danger_details() == ["Dynamic: Tags - Env"]


class TestChangeSet:
    """Module provenance and dangerous changes."""

    def test_has_module_is_sticky(self) -> None:
        change_set = make_change_set(changes=[make_change("A")])
        assert not change_set.has_module
        change_set.add_change(make_change("B", module="Net(My::Net::MODULE)"))
        change_set.add_change(make_change("C"))
        assert change_set.has_module

    def test_dangerous_changes(self) -> None:
        change_set = make_change_set(
            changes=[make_change("A"), make_change("B", requires_recreation="Always")]
        )
        assert [c.logical_id for c in change_set.dangerous_changes] == ["B"]


# =============================================================================
# Stacks and deployments
# =============================================================================


class TestStackSnapshot:
    def test_exports_only_include_exported_outputs(self) -> None:
        stack = StackSnapshot(
            stack_id="arn",
            name="web",
            status="CREATE_COMPLETE",
            outputs=(
                StackOutput(key="Url", value="https://x"),
                StackOutput(key="VpcId", value="vpc-1", export_name="network-VpcId"),
            ),
        )
        assert [output.key for output in stack.exports] == ["VpcId"]


class TestDeployment:
    """Deployment request validation."""

    def test_duplicate_parameter_keys_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="duplicate parameter key 'Env'"):
            Deployment(
                stack_name="web",
                change_set_name="cs",
                parameters=[Parameter("Env", "a"), Parameter("Env", "b")],
            )

    def test_duplicate_tag_keys_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="duplicate tag key"):
            Deployment(
                stack_name="web",
                change_set_name="cs",
                tags=[Tag("team", "a"), Tag("team", "b")],
            )

    def test_change_set_type_follows_is_new(self) -> None:
        deployment = Deployment(stack_name="web", change_set_name="cs")
        assert deployment.change_set_type == ChangeSetType.UPDATE
        deployment.is_new = True
        assert deployment.change_set_type == ChangeSetType.CREATE

    def test_lookup_name_prefers_stack_id(self) -> None:
        deployment = Deployment(stack_name="web", change_set_name="cs")
        assert deployment.lookup_name == "web"
        deployment.stack_id = "arn:aws:cloudformation:eu-west-1:1:stack/web/x"
        assert deployment.lookup_name == deployment.stack_id

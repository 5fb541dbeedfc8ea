"""Tests for stackpilot.aws_config."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from stackpilot import aws_config
from stackpilot.aws_config import AWSConfig, get_aioboto3_session, get_aws_config
from stackpilot.config import AWSSettings

# ---------------------------------------------------------------------------
# Env-var names used by the module under test
# ---------------------------------------------------------------------------
_ALL_ENV_VARS = (
    "STACKPILOT_AWS_REGION",
    "AWS_DEFAULT_REGION",
    "AWS_REGION",
    "AWS_PROFILE",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "STACKPILOT_AWS_ENDPOINT_URL",
    "AWS_ENDPOINT_URL",
)


@pytest.fixture(autouse=True)
def _clear_env_and_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove all AWS env vars and clear the cache before each test."""
    for var in _ALL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    get_aws_config.cache_clear()


# ===================================================================
# get_aws_config(): region resolution
# ===================================================================


class TestGetAwsConfigRegion:
    """Region precedence: STACKPILOT_AWS_REGION > AWS_DEFAULT_REGION > AWS_REGION > us-east-1."""

    def test_defaults_to_us_east_1(self) -> None:
        cfg = get_aws_config()
        assert cfg.region == "us-east-1"

    def test_aws_region_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        cfg = get_aws_config()
        assert cfg.region == "eu-west-1"

    def test_aws_default_region_takes_precedence_over_aws_region(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        monkeypatch.setenv("AWS_DEFAULT_REGION", "ap-south-1")
        cfg = get_aws_config()
        assert cfg.region == "ap-south-1"

    def test_stackpilot_region_takes_precedence_over_all(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        monkeypatch.setenv("AWS_DEFAULT_REGION", "ap-south-1")
        monkeypatch.setenv("STACKPILOT_AWS_REGION", "us-west-2")
        cfg = get_aws_config()
        assert cfg.region == "us-west-2"


# ===================================================================
# get_aws_config(): credentials and profile
# ===================================================================


class TestGetAwsConfigCredentials:
    """Credentials and profile reading."""

    def test_no_credentials_returns_none(self) -> None:
        cfg = get_aws_config()
        assert cfg.access_key_id is None
        assert cfg.secret_access_key is None
        assert cfg.session_token is None
        assert cfg.profile is None

    def test_reads_credentials(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKID")
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "SECRET")
        monkeypatch.setenv("AWS_SESSION_TOKEN", "TOKEN")
        cfg = get_aws_config()
        assert cfg.access_key_id == "AKID"
        assert cfg.secret_access_key == "SECRET"
        assert cfg.session_token == "TOKEN"

    def test_reads_profile(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AWS_PROFILE", "staging")
        assert get_aws_config().profile == "staging"


# ===================================================================
# get_aws_config(): endpoint_url
# ===================================================================


class TestGetAwsConfigEndpoint:
    """Endpoint URL for LocalStack/testing."""

    def test_no_endpoint_returns_none(self) -> None:
        assert get_aws_config().endpoint_url is None

    def test_aws_endpoint_url_fallback(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AWS_ENDPOINT_URL", "http://localhost:4567")
        assert get_aws_config().endpoint_url == "http://localhost:4567"

    def test_stackpilot_endpoint_takes_precedence(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AWS_ENDPOINT_URL", "http://localhost:4567")
        monkeypatch.setenv("STACKPILOT_AWS_ENDPOINT_URL", "http://localhost:4566")
        assert get_aws_config().endpoint_url == "http://localhost:4566"


# ===================================================================
# get_aws_config(): caching
# ===================================================================


class TestGetAwsConfigCaching:
    """functools.cache memoizes the result."""

    def test_returns_same_object_on_repeated_calls(self) -> None:
        assert get_aws_config() is get_aws_config()

    def test_cache_clear_returns_fresh_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        cfg1 = get_aws_config()
        assert cfg1.region == "us-east-1"

        monkeypatch.setenv("STACKPILOT_AWS_REGION", "eu-north-1")
        get_aws_config.cache_clear()
        cfg2 = get_aws_config()
        assert cfg2.region == "eu-north-1"
        assert cfg1 is not cfg2


# ===================================================================
# AWSConfig.session_kwargs() and overrides
# ===================================================================


class TestSessionKwargs:
    """Test the kwargs dict generation for sessions."""

    def test_region_always_present(self) -> None:
        assert AWSConfig(region="us-east-1").session_kwargs() == {"region_name": "us-east-1"}

    def test_all_fields_set(self) -> None:
        cfg = AWSConfig(
            region="ap-southeast-1",
            profile="ops",
            access_key_id="AKID",
            secret_access_key="SECRET",
            session_token="TOKEN",
            endpoint_url="http://localstack:4566",
        )
        assert cfg.session_kwargs() == {
            "region_name": "ap-southeast-1",
            "profile_name": "ops",
            "aws_access_key_id": "AKID",
            "aws_secret_access_key": "SECRET",
            "aws_session_token": "TOKEN",
        }

    def test_empty_string_credentials_excluded(self) -> None:
        """Empty strings are falsy, so they should not appear in kwargs."""
        kwargs = AWSConfig(region="us-east-1", access_key_id="", secret_access_key="").session_kwargs()
        assert "aws_access_key_id" not in kwargs
        assert "aws_secret_access_key" not in kwargs

    def test_is_frozen(self) -> None:
        cfg = AWSConfig(region="us-east-1")
        with pytest.raises(AttributeError):
            cfg.region = "eu-west-1"  # type: ignore[misc]


class TestWithOverrides:
    """Settings file values override the environment; CLI flags override both."""

    def test_no_overrides_keeps_environment(self) -> None:
        cfg = AWSConfig(region="us-east-1", profile="env")
        assert cfg.with_overrides() == cfg

    def test_settings_override_environment(self) -> None:
        cfg = AWSConfig(region="us-east-1").with_overrides(
            AWSSettings(region="eu-central-1", endpoint_url="http://localhost:4566")
        )
        assert cfg.region == "eu-central-1"
        assert cfg.endpoint_url == "http://localhost:4566"

    def test_flags_override_settings(self) -> None:
        cfg = AWSConfig(region="us-east-1").with_overrides(
            AWSSettings(region="eu-central-1", profile="file"),
            region="ap-south-1",
            profile="flag",
        )
        assert cfg.region == "ap-south-1"
        assert cfg.profile == "flag"


# ===================================================================
# get_aioboto3_session()
# ===================================================================


class TestGetAioboto3Session:
    """Test aioboto3 session creation with a mocked aioboto3 module."""

    def test_creates_session_with_config(self, monkeypatch: pytest.MonkeyPatch) -> None:
        mock_aioboto3 = MagicMock()
        mock_session = MagicMock()
        mock_aioboto3.Session.return_value = mock_session
        monkeypatch.setattr(aws_config, "aioboto3", mock_aioboto3)

        config = AWSConfig(
            region="ap-northeast-1",
            access_key_id="AKID",
            secret_access_key="SECRET",
        )
        result = get_aioboto3_session(config)

        mock_aioboto3.Session.assert_called_once_with(
            region_name="ap-northeast-1",
            aws_access_key_id="AKID",
            aws_secret_access_key="SECRET",
        )
        assert result is mock_session

    def test_uses_get_aws_config_when_config_is_none(self, monkeypatch: pytest.MonkeyPatch) -> None:
        mock_aioboto3 = MagicMock()
        monkeypatch.setattr(aws_config, "aioboto3", mock_aioboto3)
        monkeypatch.setenv("AWS_DEFAULT_REGION", "me-south-1")
        get_aws_config.cache_clear()

        get_aioboto3_session(None)

        mock_aioboto3.Session.assert_called_once_with(region_name="me-south-1")

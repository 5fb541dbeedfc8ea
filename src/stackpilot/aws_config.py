"""
AWS configuration for stackpilot.

Resolves region, credentials and endpoint from the environment, lets the
settings file and CLI flags override them, and builds the aioboto3 session
the CloudFormation adapter runs on. The engine itself never reads the
environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from functools import cache
from typing import Any

import aioboto3

from .config import AWSSettings


@dataclass(frozen=True)
class AWSConfig:
    """AWS configuration from environment variables.

    Attributes:
        region: AWS region (from STACKPILOT_AWS_REGION or AWS_DEFAULT_REGION)
        profile: Named profile from the shared credentials file
        access_key_id: AWS access key ID (optional if using profiles or roles)
        secret_access_key: AWS secret access key (optional if using profiles or roles)
        session_token: Session token for temporary credentials
        endpoint_url: Custom endpoint for LocalStack/testing
    """

    region: str
    profile: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    endpoint_url: str | None = None

    def session_kwargs(self) -> dict[str, Any]:
        """Build kwargs for aioboto3.Session."""
        kwargs: dict[str, Any] = {"region_name": self.region}
        if self.profile:
            kwargs["profile_name"] = self.profile
        if self.access_key_id:
            kwargs["aws_access_key_id"] = self.access_key_id
        if self.secret_access_key:
            kwargs["aws_secret_access_key"] = self.secret_access_key
        if self.session_token:
            kwargs["aws_session_token"] = self.session_token
        return kwargs

    def with_overrides(
        self,
        settings: AWSSettings | None = None,
        region: str | None = None,
        profile: str | None = None,
    ) -> AWSConfig:
        """Apply settings-file values, then CLI flags, on top of the environment."""
        config = self
        if settings is not None:
            config = replace(
                config,
                region=settings.region or config.region,
                profile=settings.profile or config.profile,
                endpoint_url=settings.endpoint_url or config.endpoint_url,
            )
        return replace(
            config,
            region=region or config.region,
            profile=profile or config.profile,
        )


@cache
def get_aws_config() -> AWSConfig:
    """Load AWS configuration from environment variables.

    Environment variables (checked in order):
        - STACKPILOT_AWS_REGION / AWS_DEFAULT_REGION / AWS_REGION → region
        - AWS_PROFILE → profile
        - AWS_ACCESS_KEY_ID → access_key_id
        - AWS_SECRET_ACCESS_KEY → secret_access_key
        - AWS_SESSION_TOKEN → session_token
        - STACKPILOT_AWS_ENDPOINT_URL / AWS_ENDPOINT_URL → endpoint_url (for LocalStack)

    Returns:
        AWSConfig with validated settings.
    """
    region = (
        os.environ.get("STACKPILOT_AWS_REGION")
        or os.environ.get("AWS_DEFAULT_REGION")
        or os.environ.get("AWS_REGION")
        or "us-east-1"
    )

    return AWSConfig(
        region=region,
        profile=os.environ.get("AWS_PROFILE"),
        access_key_id=os.environ.get("AWS_ACCESS_KEY_ID"),
        secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY"),
        session_token=os.environ.get("AWS_SESSION_TOKEN"),
        endpoint_url=os.environ.get("STACKPILOT_AWS_ENDPOINT_URL")
        or os.environ.get("AWS_ENDPOINT_URL"),
    )


def get_aioboto3_session(config: AWSConfig | None = None) -> aioboto3.Session:
    """Create an aioboto3 Session with credentials from config.

    Args:
        config: AWS config (uses get_aws_config() if None)

    Returns:
        aioboto3.Session instance
    """
    if config is None:
        config = get_aws_config()
    return aioboto3.Session(**config.session_kwargs())

"""Shared pytest fixtures for stackpilot tests."""

from __future__ import annotations

import logging

import pytest
from fakes import FakeCloudFormation

from stackpilot.aws_config import get_aws_config
from stackpilot.engine.changesets import PollSettings
from stackpilot.engine.retry import RetryPolicy
from stackpilot.logging import ROOT_LOGGER


@pytest.fixture
def port() -> FakeCloudFormation:
    """An empty in-memory CloudFormation port."""
    return FakeCloudFormation()


@pytest.fixture
def no_pause() -> RetryPolicy:
    """Retry policy that retries throttled calls without sleeping."""
    return RetryPolicy(throttle_pause=0)


@pytest.fixture
def fast_poll() -> PollSettings:
    """Polling that never sleeps but still gives up eventually."""
    return PollSettings(initial_delay=0, max_delay=0, timeout=5)


@pytest.fixture(autouse=True)
def _clear_aws_config_cache():
    get_aws_config.cache_clear()
    yield
    get_aws_config.cache_clear()


@pytest.fixture(autouse=True)
def _reset_stackpilot_logger():
    """Undo setup_logging so caplog sees records in every test."""
    logger = logging.getLogger(ROOT_LOGGER)
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)

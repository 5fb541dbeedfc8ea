"""Throttle handling for remote calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from .errors import CloudError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How long to pause before the single retry of a throttled call."""

    throttle_pause: float = 5.0


DEFAULT_RETRY = RetryPolicy()


async def call_remote(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy = DEFAULT_RETRY,
    **kwargs: Any,
) -> T:
    """
    Await ``func(*args, **kwargs)``, retrying exactly once when throttled.

    A second throttle is raised to the caller. Any other error propagates
    immediately.
    """
    try:
        return await func(*args, **kwargs)
    except CloudError as e:
        if not e.is_throttling:
            raise
        name = getattr(func, "__name__", "remote call")
        logger.warning(f"{name} was throttled, retrying in {policy.throttle_pause}s")

    await asyncio.sleep(policy.throttle_pause)
    return await func(*args, **kwargs)

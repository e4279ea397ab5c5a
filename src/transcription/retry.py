"""Uniform retry-with-backoff for network and API calls."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from tenacity import Retrying, before_sleep_log, stop_after_attempt, wait_exponential

from src.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_call(fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Call ``fn`` with the configured retry policy.

    Every exception type is retried the same way: ``settings.retry_attempts``
    attempts with delays of ``initial_delay * factor ** n``. The last error is
    re-raised unchanged.
    """
    retrying = Retrying(
        stop=stop_after_attempt(settings.retry_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_initial_delay,
            exp_base=settings.retry_backoff_factor,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retrying(fn, *args, **kwargs)

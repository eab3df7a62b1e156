"""Deadline- and cancellation-aware wait loops used by the drivers."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import httpx

from mpc_relay.errors import DriverCancelled, DriverTimeout, RoundIncomplete

from .base import CancelToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures worth retrying on the polling cadence.
RETRYABLE_READ_ERRORS: Tuple[Type[BaseException], ...] = (httpx.TransportError, RoundIncomplete)
# Writes are resent on any transport failure, including a lost response:
# the coordinator treats a repeated submit, join (same token) or finalize
# as the first one.
RETRYABLE_WRITE_ERRORS: Tuple[Type[BaseException], ...] = (httpx.TransportError,)


class Deadline:
    """Absolute deadline for a driver run. ``None`` never expires."""

    def __init__(self, timeout_seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.timeout_seconds = timeout_seconds
        self._expires_at = None if timeout_seconds is None else clock() + timeout_seconds

    def remaining(self) -> Optional[float]:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0


def _check(description: str, cancel_token: Optional[CancelToken], deadline: Optional[Deadline]) -> None:
    if cancel_token is not None and cancel_token.is_cancelled:
        raise DriverCancelled(f"Cancelled while {description}: {cancel_token.reason}")
    if deadline is not None and deadline.expired():
        raise DriverTimeout(f"Timed out after {deadline.timeout_seconds}s while {description}")


async def poll_until(
    check: Callable[[], Awaitable[Optional[T]]],
    *,
    interval: float,
    description: str,
    cancel_token: Optional[CancelToken] = None,
    deadline: Optional[Deadline] = None,
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_READ_ERRORS,
) -> T:
    """Call ``check`` every ``interval`` seconds until it returns a value.

    ``None`` from the check, or one of ``retry_on`` raised by it, means
    "not yet". Cancellation and the deadline are checked before every
    attempt.
    """
    attempt = 0
    while True:
        _check(description, cancel_token, deadline)
        attempt += 1
        try:
            result = await check()
        except retry_on as e:
            if isinstance(e, RoundIncomplete):
                logger.debug(f"Still {description}: {e}")
            else:
                logger.warning(f"Retryable error while {description} (attempt {attempt}): {e!r}")
        else:
            if result is not None:
                return result
            logger.debug(f"Still {description} (attempt {attempt})")

        delay = interval
        if deadline is not None:
            remaining = deadline.remaining()
            if remaining is not None:
                delay = min(interval, remaining)
        await asyncio.sleep(delay)


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    *,
    interval: float,
    description: str,
    cancel_token: Optional[CancelToken] = None,
    deadline: Optional[Deadline] = None,
    retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_READ_ERRORS,
) -> T:
    """Run a one-shot request, retrying only the ``retry_on`` failures."""

    async def check():
        return (await call(),)

    (value,) = await poll_until(
        check,
        interval=interval,
        description=description,
        cancel_token=cancel_token,
        deadline=deadline,
        retry_on=retry_on,
    )
    return value

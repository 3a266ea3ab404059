from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from llm_call_guard.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableError(Exception):
    """
    Transient failure that call_with_retry may retry.

    retry_after_s carries an upstream hint (e.g. Retry-After) for logging;
    the backoff schedule does not depend on it.
    """

    def __init__(self, message: str, *, retry_after_s: float | None = None) -> None:
        super().__init__(message)
        self.retry_after_s = retry_after_s


class RetryCancelled(Exception):
    pass


def backoff_delay(attempt: int, base_delay_s: float) -> float:
    return base_delay_s * 2 ** attempt


def _check_args(max_retries: int, cancel_event: object, sleep: object) -> None:
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")
    # A cancellable wait is the event's own timed wait, not sleep()
    if cancel_event is not None and sleep is not None:
        raise ValueError("cancel_event and sleep are mutually exclusive")


def _past_deadline(started: float, delay: float, deadline_s: float | None) -> bool:
    if deadline_s is None:
        return False
    return time.monotonic() - started + delay > deadline_s


def call_with_retry(
        operation: Callable[[], T],
        max_retries: int,
        *,
        base_delay_s: float = 1.0,
        retry_on: tuple[type[BaseException], ...] = (RetryableError,),
        cancel_event: threading.Event | None = None,
        deadline_s: float | None = None,
        sleep: Callable[[float], None] | None = None,
) -> T:
    """
    Run operation, retrying failures that match retry_on.

    The wait before retry number i (0-indexed) is base_delay_s * 2**i.
    After max_retries retries the last retryable error is re-raised as-is.
    Errors not matching retry_on propagate immediately.

    If cancel_event is set before or during a wait, RetryCancelled is raised.
    cancel_event and sleep cannot be combined.
    If deadline_s is given and the next wait would end past it (measured from
    the first attempt), the last retryable error is re-raised without waiting.
    """
    _check_args(max_retries, cancel_event, sleep)
    if sleep is None:
        sleep = time.sleep

    started = time.monotonic()
    attempt = 0

    while True:
        try:
            return operation()
        except retry_on as exc:
            if attempt >= max_retries:
                logger.warning("Retries exhausted after %d attempt(s): %s", attempt + 1, type(exc).__name__)
                raise

            delay = backoff_delay(attempt, base_delay_s)
            if _past_deadline(started, delay, deadline_s):
                logger.warning("Retry deadline %.2fs reached after %d attempt(s)", deadline_s, attempt + 1)
                raise

            last_exc = exc

        logger.warning(
            "Retryable error %s, retry %d/%d in %.2fs",
            type(last_exc).__name__,
            attempt + 1,
            max_retries,
            delay,
        )

        if cancel_event is not None:
            if cancel_event.wait(delay):
                logger.info("Retry loop cancelled during backoff")
                raise RetryCancelled("Retry cancelled") from last_exc
        else:
            sleep(delay)

        attempt += 1


async def async_call_with_retry(
        operation: Callable[[], Awaitable[T]],
        max_retries: int,
        *,
        base_delay_s: float = 1.0,
        retry_on: tuple[type[BaseException], ...] = (RetryableError,),
        cancel_event: asyncio.Event | None = None,
        deadline_s: float | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
) -> T:
    """
    Cooperative variant of call_with_retry.

    Waits yield to the event loop. A set cancel_event aborts the wait with
    RetryCancelled; task cancellation propagates as CancelledError.
    cancel_event and sleep cannot be combined.
    """
    _check_args(max_retries, cancel_event, sleep)
    if sleep is None:
        sleep = asyncio.sleep

    started = time.monotonic()
    attempt = 0

    while True:
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= max_retries:
                logger.warning("Retries exhausted after %d attempt(s): %s", attempt + 1, type(exc).__name__)
                raise

            delay = backoff_delay(attempt, base_delay_s)
            if _past_deadline(started, delay, deadline_s):
                logger.warning("Retry deadline %.2fs reached after %d attempt(s)", deadline_s, attempt + 1)
                raise

            last_exc = exc

        logger.warning(
            "Retryable error %s, retry %d/%d in %.2fs",
            type(last_exc).__name__,
            attempt + 1,
            max_retries,
            delay,
        )

        if cancel_event is not None:
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            else:
                logger.info("Retry loop cancelled during backoff")
                raise RetryCancelled("Retry cancelled") from last_exc
        else:
            await sleep(delay)

        attempt += 1


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int
    base_delay_s: float
    deadline_s: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        deadline = settings.retry_deadline_s if settings.retry_deadline_s > 0 else None
        return cls(
            max_retries=settings.retry_max_retries,
            base_delay_s=settings.retry_base_delay_s,
            deadline_s=deadline,
        )

    def call(
            self,
            operation: Callable[[], T],
            *,
            retry_on: tuple[type[BaseException], ...] = (RetryableError,),
            cancel_event: threading.Event | None = None,
    ) -> T:
        return call_with_retry(
            operation,
            self.max_retries,
            base_delay_s=self.base_delay_s,
            retry_on=retry_on,
            cancel_event=cancel_event,
            deadline_s=self.deadline_s,
        )

    async def acall(
            self,
            operation: Callable[[], Awaitable[T]],
            *,
            retry_on: tuple[type[BaseException], ...] = (RetryableError,),
            cancel_event: asyncio.Event | None = None,
    ) -> T:
        return await async_call_with_retry(
            operation,
            self.max_retries,
            base_delay_s=self.base_delay_s,
            retry_on=retry_on,
            cancel_event=cancel_event,
            deadline_s=self.deadline_s,
        )

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..errors import AlreadyExistsError, ConflictError, NotFoundError
from ..lifecycle.handle import ResourceHandle
from ..store.base import ObjectStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(attempt: int, base: float = 1.5, jitter: float = 0.5) -> float:
    """Compute exponential backoff with jitter."""
    delay = base ** attempt
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, base: float = 1.5) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, base=base)
    await asyncio.sleep(delay)


class RetryTransient(Exception):
    """Raised by a retried callable to ask for another attempt."""

    def __init__(self, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(str(cause) if cause else "transient failure")


class RetryPermanent(Exception):
    """Raised by a retried callable to stop retrying.

    With a cause the cause is re-raised; without one the retry succeeds.
    """

    def __init__(self, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(str(cause) if cause else "permanent result")


class RetryTimeoutError(TimeoutError):
    """No permanent result was reached before the deadline."""


async def retry(
    fn: Callable[[], Awaitable[T]],
    *,
    frequency: float,
    timeout: Optional[float] = None,
) -> Optional[T]:
    """Call ``fn`` until it returns or raises something other than RetryTransient.

    Sleeps ``frequency`` seconds between attempts. If ``timeout`` elapses
    first, RetryTimeoutError is raised from the last transient cause. An
    attempt still running at the deadline is cancelled.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None
    last: Optional[BaseException] = None
    attempt = 0

    while True:
        attempt += 1
        try:
            if deadline is None:
                return await fn()
            return await asyncio.wait_for(fn(), max(deadline - loop.time(), 0))
        except RetryTransient as e:
            last = e.cause
            logger.debug(f"Attempt {attempt} failed transiently: {e}")
        except RetryPermanent as e:
            if e.cause is not None:
                raise e.cause
            return None
        except asyncio.TimeoutError as e:
            if deadline is None:
                raise
            raise RetryTimeoutError(
                f"attempt {attempt} did not finish in time: {last}"
            ) from (last or e)

        if deadline is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise RetryTimeoutError(
                    f"gave up after {attempt} attempts: {last}"
                ) from last
            await asyncio.sleep(min(frequency, remaining))
        else:
            await asyncio.sleep(frequency)


async def mutate(
    store: ObjectStore,
    handle: ResourceHandle,
    fn: Callable[[Any], None],
    *,
    timeout: float,
    frequency: float = 0.05,
    create_missing: bool = False,
) -> None:
    """Apply ``fn`` to the current stored object and write it back.

    The read-modify-write cycle is repeated when the write loses a race
    (conflict, or the object vanished in between) until ``timeout``. A missing
    object is created from scratch when ``create_missing`` is set, otherwise
    NotFoundError is raised.
    """

    async def attempt() -> None:
        handle.object = handle.new_object()
        if not await handle.load(store) and not create_missing:
            raise RetryPermanent(
                NotFoundError(handle.resource_class.KIND, handle.key)
            )
        fn(handle.object)
        try:
            await handle.persist(store)
        except (AlreadyExistsError, ConflictError, NotFoundError) as e:
            raise RetryTransient(e)

    await retry(attempt, frequency=frequency, timeout=timeout)

"""
Helpers for bounding, retrying and detaching storage operations.
"""
from __future__ import annotations

import asyncio
import functools
import logging
from typing import Awaitable, Callable, Optional, ParamSpec, Set, Type, TypeVar

from .exceptions import StorageError, StorageTimeout

P = ParamSpec('P')
R = TypeVar('R')

logger = logging.getLogger(__name__)


def retry_on_db_error(
    max_retries: int = 3,
    delay: float = 0.05,
    backoff_multiplier: float = 2.0,
    exceptions: tuple[Type[Exception], ...] = (StorageError,)
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator for retrying storage operations with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts
        delay: Initial delay between retries in seconds
        backoff_multiplier: Multiplier for delay between retries
        exceptions: Tuple of exceptions to catch and retry on

    Returns:
        Decorated async function with retry logic
    """
    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            current_delay = delay
            last_exception: Optional[Exception] = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt == max_retries:
                        break

                    logger.warning(
                        f"{func.__qualname__} attempt {attempt + 1}/{max_retries} failed: {e}. "
                        f"Retrying in {current_delay:.2f}s..."
                    )
                    await asyncio.sleep(current_delay)
                    current_delay *= backoff_multiplier

            raise StorageError(
                f"{func.__qualname__} failed after {max_retries} retries: {last_exception}",
                original_exception=last_exception,
            ) from last_exception

        return wrapper
    return decorator


async def with_timeout(awaitable: Awaitable[R], seconds: Optional[float], operation: str) -> R:
    """Await ``awaitable`` for at most ``seconds``; ``None`` means unbounded."""
    if seconds is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as e:
        raise StorageTimeout(
            f"{operation} timed out after {seconds}s", context={"operation": operation}
        ) from e


class DetachedWriter:
    """Runs storage writes that must outlive the request that started them.

    ``submit`` is fire-and-forget: failures are logged, never raised.
    ``shielded`` waits for the result but keeps the write running if the
    caller is cancelled. ``drain`` waits for outstanding writes on shutdown.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def submit(self, coro: Awaitable[object], *, name: str) -> asyncio.Task:
        return self._track(asyncio.ensure_future(self._guarded(coro, name)))

    async def _guarded(self, coro: Awaitable[object], name: str) -> None:
        try:
            await with_timeout(coro, self.timeout, name)
        except Exception:
            logger.warning(f"Background write {name} failed", exc_info=True)

    async def shielded(self, coro: Awaitable[R], *, name: str) -> R:
        task = self._track(asyncio.ensure_future(with_timeout(coro, self.timeout, name)))
        task.add_done_callback(functools.partial(_log_orphaned_failure, name))
        return await asyncio.shield(task)

    async def drain(self, timeout: float = 5.0) -> None:
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} background writes still pending at shutdown")


def _log_orphaned_failure(name: str, task: asyncio.Task) -> None:
    # Marks the exception as retrieved; the awaiting caller, if any, still sees it.
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Detached write {name} finished with {task.exception()!r}")

# leakprobe/utils/async_helpers.py
"""
Async utilities for safe task management.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Coroutine, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def create_safe_task(
    coro: Coroutine[Any, Any, Any],
    name: Optional[str] = None,
    log_errors: bool = True
) -> asyncio.Task:
    """
    Create an asyncio task with automatic error handling.

    This prevents background tasks from silently swallowing exceptions.

    Args:
        coro: The coroutine to run as a task
        name: Optional name for the task (for logging)
        log_errors: Whether to log errors (default True)

    Returns:
        The created asyncio.Task
    """
    task = asyncio.create_task(coro, name=name)

    def _handle_exception(t: asyncio.Task):
        if t.cancelled():
            return
        exc = t.exception()
        if exc and log_errors:
            task_name = name or t.get_name()
            logger.error(f"[AsyncTask:{task_name}] Unhandled exception: {exc}", exc_info=exc)

    task.add_done_callback(_handle_exception)
    return task


@dataclass(frozen=True)
class Settled(Generic[T]):
    """Outcome of one operation in a settled batch: exactly one of value/error is meaningful."""
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def gather_settled(aws: Sequence[Awaitable[T]]) -> List[Settled[T]]:
    """
    Start every awaitable together and wait until all of them have settled.

    Result slot i always corresponds to aws[i]. A failure lands in its own slot
    and never cancels siblings. Cancellation of the caller still propagates.
    """
    if not aws:
        return []
    results = await asyncio.gather(*aws, return_exceptions=True)
    settled: List[Settled[T]] = []
    for outcome in results:
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            settled.append(Settled(error=outcome))
        else:
            settled.append(Settled(value=outcome))
    return settled

"""
Bounded-concurrency helpers.

Every helper takes zero-argument callables returning awaitables, so an
operation only starts when its group starts. Groups run strictly one after
another; members of a group run concurrently.

Usage:
    from catalogsync.concurrency import run_batched

    results = await run_batched([lambda: fetch(1), lambda: fetch(2)], batch_size=5)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

from .exceptions import BatchTimeoutError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
Operation = Callable[[], Awaitable[T]]
ProgressHook = Callable[[int, int], Any]


@dataclass
class FailedOperation:
    """An operation error tagged with the operation's original index."""

    index: int
    error: BaseException


@dataclass
class SafeRunResult:
    """Outcome of run_safe()."""

    succeeded: List[Any] = field(default_factory=list)
    failed: List[FailedOperation] = field(default_factory=list)


def _groups(operations: Sequence[Operation], batch_size: int):
    if batch_size < 1:
        raise ValidationError(f"batch_size must be at least 1, got {batch_size}")
    for start in range(0, len(operations), batch_size):
        yield start, operations[start : start + batch_size]


async def _run_group(group: Sequence[Operation]) -> List[Any]:
    """Run one group concurrently; on first failure cancel the rest and raise."""
    tasks = [asyncio.ensure_future(op()) for op in group]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def run_batched(operations: Sequence[Operation], batch_size: int = 5) -> List[Any]:
    """Run operations in sequential groups, failing fast.

    Returns:
        Results in input order.

    Raises:
        The first error of the failing group. Later groups never start.
    """
    results: List[Any] = []
    for _, group in _groups(operations, batch_size):
        results.extend(await _run_group(group))
    return results


async def run_with_retry(
    operation_factories: Sequence[Operation],
    max_retries: int = 3,
    backoff_multiplier: float = 2.0,
) -> List[Any]:
    """Run operations, retrying the unresolved ones together each round.

    The wait before retry round k (1-indexed) is backoff_multiplier ** k seconds.

    Raises:
        The error of the lowest failing index, once the last round still fails.
    """
    total = len(operation_factories)
    results: List[Any] = [None] * total
    pending = list(range(total))
    errors: dict[int, BaseException] = {}

    for attempt in range(max_retries + 1):
        if not pending:
            break
        if attempt > 0:
            delay = backoff_multiplier**attempt
            logger.debug(
                f"Retry round {attempt}/{max_retries} for {len(pending)} operation(s) in {delay}s"
            )
            await asyncio.sleep(delay)

        outcomes = await asyncio.gather(
            *(operation_factories[i]() for i in pending), return_exceptions=True
        )

        still_pending = []
        for index, outcome in zip(pending, outcomes):
            if isinstance(outcome, BaseException):
                errors[index] = outcome
                still_pending.append(index)
            else:
                results[index] = outcome
                errors.pop(index, None)
        pending = still_pending

    if pending:
        raise errors[min(pending)]
    return results


async def run_with_timeout(
    operations: Sequence[Operation],
    batch_size: int = 5,
    timeout_ms: int = 30000,
) -> List[Any]:
    """run_batched() where every group must settle within timeout_ms."""
    results: List[Any] = []
    for _, group in _groups(operations, batch_size):
        try:
            batch = await asyncio.wait_for(_run_group(group), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            raise BatchTimeoutError(timeout_ms) from e
        results.extend(batch)
    return results


async def run_safe(operations: Sequence[Operation], batch_size: int = 5) -> SafeRunResult:
    """Run every group, capturing each operation's error instead of raising."""
    outcome = SafeRunResult()
    for start, group in _groups(operations, batch_size):
        settled = await asyncio.gather(*(op() for op in group), return_exceptions=True)
        for offset, value in enumerate(settled):
            if isinstance(value, BaseException):
                outcome.failed.append(FailedOperation(index=start + offset, error=value))
            else:
                outcome.succeeded.append(value)
    return outcome


async def run_with_progress(
    operations: Sequence[Operation],
    batch_size: int = 5,
    on_progress: Optional[ProgressHook] = None,
) -> List[Any]:
    """run_batched() calling on_progress(completed, total) after each group."""
    total = len(operations)
    completed = 0
    results: List[Any] = []
    for _, group in _groups(operations, batch_size):
        results.extend(await _run_group(group))
        completed += len(group)
        if on_progress:
            on_progress(completed, total)
    return results


__all__ = [
    "FailedOperation",
    "SafeRunResult",
    "run_batched",
    "run_with_retry",
    "run_with_timeout",
    "run_safe",
    "run_with_progress",
]

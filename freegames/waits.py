import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence


class AllConditionsFailed(Exception):
    def __init__(self, errors: List[BaseException]) -> None:
        super().__init__("; ".join(str(e) for e in errors) or "no conditions given")
        self.errors = errors


def _retrieve(task: "asyncio.Future[Any]") -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logging.debug("Abandoned wait ended with %s", error)


def _abandon(task: "asyncio.Future[Any]") -> None:
    if task.done():
        _retrieve(task)
    else:
        task.add_done_callback(_retrieve)


def fire_and_forget(awaitable: Awaitable[Any]) -> "asyncio.Future[Any]":
    """Schedule ``awaitable`` without waiting for it; its failure is only logged."""
    task = asyncio.ensure_future(awaitable)
    _abandon(task)
    return task


async def await_first(
    conditions: Sequence[Callable[[], Awaitable[Any]]],
    timeout: Optional[float] = None,
) -> int:
    """Wait for several UI conditions at once and return the index of the first to succeed.

    A condition that raises is discarded while others are still pending, so a
    selector that never shows up does not mask one that does. The losers keep
    running until their own timeouts fire; they are not cancelled.
    """
    tasks = [asyncio.ensure_future(condition()) for condition in conditions]
    index_of = {task: i for i, task in enumerate(tasks)}
    pending = set(tasks)
    errors: List[BaseException] = []
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    try:
        while pending:
            remaining = None if deadline is None else max(0.0, deadline - loop.time())
            done, pending = await asyncio.wait(pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)
            if not done:
                raise asyncio.TimeoutError(f"none of {len(tasks)} conditions met within {timeout}s")
            for task in sorted(done, key=index_of.__getitem__):
                if task.cancelled():
                    errors.append(asyncio.CancelledError())
                elif task.exception() is None:
                    return index_of[task]
                else:
                    errors.append(task.exception())
        raise AllConditionsFailed(errors)
    finally:
        for task in pending:
            _abandon(task)

from __future__ import annotations

import asyncio
import inspect
import logging
import math
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

from ..errors import DeadlineExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Union[Callable[[], Any], Awaitable[T]]


class SettlementSlot(Generic[T]):
    """Single-assignment outcome shared by the timer and the operation.

    The first call to :meth:`resolve` or :meth:`reject` settles the slot and
    returns ``True``; every later call is a no-op returning ``False``.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._future: asyncio.Future[T] = loop.create_future()

    @property
    def settled(self) -> bool:
        return self._future.done()

    def resolve(self, value: T) -> bool:
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def reject(self, error: BaseException) -> bool:
        if self._future.done():
            return False
        self._future.set_exception(error)
        return True

    def cancel(self) -> bool:
        return self._future.cancel()

    def __await__(self):
        return self._future.__await__()


def _validate(operation: object, timeout_ms: object, timeout_message: object, error_name: object, on_timeout: object) -> None:
    if not callable(operation) and not inspect.isawaitable(operation):
        raise TypeError("Operation must be a callable or an awaitable")
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)):
        raise TypeError("Timeout must be a number")
    if not math.isfinite(timeout_ms):
        raise ValueError("Timeout must be a finite number")
    if not isinstance(timeout_message, str):
        raise TypeError("Timeout message must be a string")
    if not isinstance(error_name, str):
        raise TypeError("Error name must be a string")
    if on_timeout is not None and not callable(on_timeout):
        raise TypeError("on_timeout must be callable")


async def _invoke(operation: Operation[T]) -> T:
    """Run ``operation`` whether it is an awaitable or a factory for one."""

    result = operation() if callable(operation) else operation
    if inspect.isawaitable(result):
        return await result
    return result


async def run_with_timeout(
    operation: Operation[T],
    timeout_ms: float,
    *,
    timeout_message: str = "Operation timed out",
    error_name: str = "TimeoutError",
    on_timeout: Callable[[DeadlineExceeded], Any] | None = None,
) -> T:
    """Race ``operation`` against a deadline of ``timeout_ms`` milliseconds.

    A non-positive deadline runs the operation unguarded. When the deadline
    fires first the call fails with :class:`DeadlineExceeded` carrying
    ``timeout_message`` and ``error_name`` after ``on_timeout`` has been called.

    The operation is not cancelled when the deadline fires: it keeps running
    and whatever it eventually produces is discarded. Side effects it already
    started (an outbound request, for instance) are not rolled back.
    """

    _validate(operation, timeout_ms, timeout_message, error_name, on_timeout)

    if timeout_ms <= 0:
        return await _invoke(operation)

    loop = asyncio.get_running_loop()
    slot: SettlementSlot[T] = SettlementSlot(loop)

    def expire() -> None:
        if slot.settled:
            return
        error = DeadlineExceeded(timeout_message, kind=error_name)
        if on_timeout is not None:
            try:
                on_timeout(error)
            except Exception:
                logger.exception("Timeout callback failed")
        slot.reject(error)

    def complete(task: asyncio.Task[T]) -> None:
        if task.cancelled():
            slot.cancel()
            return
        error = task.exception()
        if error is not None:
            if not slot.reject(error):
                logger.debug("Discarding late failure after deadline: %r", error)
            return
        slot.resolve(task.result())

    timer = loop.call_later(timeout_ms / 1000, expire)
    task = asyncio.ensure_future(_invoke(operation))
    task.add_done_callback(complete)
    try:
        return await slot
    except asyncio.CancelledError:
        # The caller was cancelled, not timed out: take the operation down with it.
        if not task.done():
            task.cancel()
        raise
    finally:
        timer.cancel()

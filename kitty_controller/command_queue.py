"""
Strictly ordered asynchronous command queue.

All work that spawns external processes on behalf of the user, and every
read or write of the compose session, travels through this queue. A single
worker task executes submissions one at a time, in submission order; a
failing task is reported and the queue moves on.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from kitty_common.errors import KittyError, QueueClosed

logger = logging.getLogger(__name__)

T = TypeVar("T")

Task = Callable[[], Awaitable[Any]]
ErrorSink = Callable[[str, BaseException], None]


@dataclass
class _Entry:
    task: Task
    description: str
    future: asyncio.Future


def _consume_exception(future: asyncio.Future) -> None:
    # Failures are already reported to the error sink; callers that never
    # await the future must not trigger "exception was never retrieved".
    if not future.cancelled():
        future.exception()


async def fan_out(calls: Iterable[Callable[[], Awaitable[T]]]) -> list[T | BaseException]:
    """
    Run independent invocations in parallel and join all of them.

    Only for bulk operations inside a single queue task; the invocations
    must not share mutable state.

    Returns:
        One result per call, in call order; failures are returned, not raised
    """
    return await asyncio.gather(*(call() for call in calls), return_exceptions=True)


class CommandQueue:
    """
    Serializes tasks onto one background worker.

    Tasks are zero-argument coroutine functions. `submit` never blocks; it
    returns a future resolved with the task's result or exception.
    """

    def __init__(self, on_error: ErrorSink | None = None):
        """
        Initialize the queue.

        Args:
            on_error: Caller-facing error sink, called as on_error(description, exc)
                      for every task that raises
        """
        self.on_error = on_error
        self._queue: asyncio.Queue[_Entry | None] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._current: _Entry | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of submitted tasks that have not started yet."""
        return self._queue.qsize()

    @property
    def current(self) -> str | None:
        """Description of the task currently executing, if any."""
        return self._current.description if self._current else None

    def start(self) -> None:
        """Start the worker task on the running event loop."""
        if self._worker is not None:
            logger.warning("Command queue already running")
            return
        self._worker = asyncio.create_task(self._run(), name="kitty-command-queue")
        logger.info("Command queue started")

    def submit(self, task: Task, description: str = "task") -> asyncio.Future:
        """
        Append a task and return immediately.

        Args:
            task: Zero-argument coroutine function
            description: Human-readable name used in logs and error reports

        Returns:
            Future resolved when the task completes

        Raises:
            QueueClosed: If shutdown has been requested
        """
        if self._closed:
            raise QueueClosed(f"Command queue is shut down; rejected '{description}'")

        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume_exception)
        self._queue.put_nowait(_Entry(task=task, description=description, future=future))
        logger.debug(f"Queued '{description}' ({self._queue.qsize()} pending)")
        return future

    async def join(self) -> None:
        """Wait until every task submitted so far has completed."""
        await self._queue.join()

    async def shutdown(self, grace_period: float = 10.0) -> None:
        """
        Stop accepting submissions and stop the worker.

        Tasks that have not started are cancelled. The in-flight task gets
        `grace_period` seconds to finish before it is cancelled, which kills
        any process it is waiting on.
        """
        if self._closed:
            return
        self._closed = True
        logger.info("Shutting down command queue...")

        while not self._queue.empty():
            entry = self._queue.get_nowait()
            if entry is not None:
                logger.info(f"Dropping queued task '{entry.description}'")
                entry.future.cancel()
            self._queue.task_done()

        if self._worker is None:
            return

        self._queue.put_nowait(None)
        try:
            await asyncio.wait_for(asyncio.shield(self._worker), timeout=grace_period)
        except asyncio.TimeoutError:
            logger.warning(
                f"Task '{self.current}' did not finish within {grace_period}s, "
                "terminating it"
            )
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        logger.info("Command queue stopped")

    async def _run(self) -> None:
        """Worker loop: one task at a time, in submission order."""
        while True:
            entry = await self._queue.get()
            if entry is None:
                self._queue.task_done()
                break

            self._current = entry
            try:
                if entry.future.cancelled():
                    continue
                result = await entry.task()
            except asyncio.CancelledError:
                entry.future.cancel()
                raise
            except Exception as e:
                if isinstance(e, KittyError):
                    logger.error(f"Task '{entry.description}' failed: {e}")
                else:
                    logger.error(
                        f"Task '{entry.description}' failed: {e}", exc_info=True
                    )
                self._report(entry.description, e)
                if not entry.future.done():
                    entry.future.set_exception(e)
            else:
                if not entry.future.done():
                    entry.future.set_result(result)
            finally:
                self._current = None
                self._queue.task_done()

    def _report(self, description: str, error: BaseException) -> None:
        if self.on_error is None:
            return
        try:
            self.on_error(description, error)
        except Exception as e:
            logger.error(f"Error sink failed while reporting '{description}': {e}")

"""Queue for background AI turns: in-process asyncio tasks or Redis via rq."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Protocol, Set

import redis
import rq
from loguru import logger

from admissions_chat.config import settings

TURN_QUEUE_NAME = "turns"


class QueueProtocol(Protocol):
    """What routes need from a queue; satisfied by ``rq.Queue`` and :class:`DirectTurnQueue`."""

    def enqueue(self, fn: Callable[..., Any], payload: dict[str, Any], *, job_timeout: int) -> Any: ...


class DirectTurnQueue:
    """Run jobs as tasks on the current event loop.

    Each job is bounded by its timeout and wrapped in an error boundary, so a
    failing turn is logged and never reaches the request that enqueued it.
    """

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task[None]] = set()

    def enqueue(
        self,
        fn: Callable[[dict[str, Any]], Awaitable[Any]],
        payload: dict[str, Any],
        *,
        job_timeout: float,
    ) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(self._run(fn, payload, job_timeout))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def _run(
        self,
        fn: Callable[[dict[str, Any]], Awaitable[Any]],
        payload: dict[str, Any],
        job_timeout: float,
    ) -> None:
        try:
            await asyncio.wait_for(fn(payload), timeout=job_timeout)
        except asyncio.TimeoutError:
            logger.error("Background job timed out after {}s payload={}", job_timeout, payload)
        except Exception:
            logger.exception("Background job failed payload={}", payload)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight jobs; cancel whatever is left after ``timeout``."""

        if not self._tasks:
            return
        logger.info("Draining {} background job(s)", len(self._tasks))
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("Cancelled {} background job(s) at shutdown", len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)


def _build_queue() -> QueueProtocol:
    if settings.queue_mode == "redis" and settings.redis_url:
        return rq.Queue(TURN_QUEUE_NAME, connection=redis.from_url(settings.redis_url))
    return DirectTurnQueue()


queue: QueueProtocol = _build_queue()


def enqueue_conversation_turn(chat_id: str, message_id: str) -> Any:
    """Schedule the AI reply to the stored student message ``message_id``."""

    from worker.handlers.turn_handler import handle_turn_job, run_turn_job

    payload = {"chat_id": chat_id, "message_id": message_id}
    job_fn = run_turn_job if isinstance(queue, DirectTurnQueue) else handle_turn_job
    return queue.enqueue(job_fn, payload, job_timeout=settings.job_timeout_s)


async def drain_pending_turns(timeout: float | None = None) -> None:
    if isinstance(queue, DirectTurnQueue):
        await queue.drain(timeout=timeout)

"""Standalone RQ worker that runs queued conversation turns."""

from __future__ import annotations

import os

import redis
from loguru import logger
from rq import Queue, Worker
from rq.timeouts import TimerDeathPenalty
from rq.worker import SimpleWorker

from admissions_chat.config import settings
from admissions_chat.logging_setup import setup_logging
from worker.turn_queue import TURN_QUEUE_NAME


class ForklessWorker(SimpleWorker):
    """In-process worker for platforms without ``os.fork``; timeouts use a timer thread."""

    death_penalty_class = TimerDeathPenalty


def main() -> None:
    setup_logging()
    if settings.queue_mode != "redis" or not settings.redis_url:
        logger.error("QUEUE_MODE=redis and REDIS_URL are required to run the turn worker")
        raise SystemExit(1)

    connection = redis.from_url(settings.redis_url)
    worker_class = Worker if hasattr(os, "fork") else ForklessWorker
    worker = worker_class([Queue(TURN_QUEUE_NAME, connection=connection)], connection=connection)
    logger.info("Turn worker listening queue={} class={}", TURN_QUEUE_NAME, worker_class.__name__)
    worker.work(with_scheduler=False)


if __name__ == "__main__":
    main()

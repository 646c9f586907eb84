"""Background jobs via RQ, falling back to running inline.

With REDIS_URL set and reachable, jobs go to an RQ queue for a worker
process (``rq worker educonnect``). Otherwise they run synchronously in
the request thread.
"""

from __future__ import annotations

import logging

import redis
from rq import Queue

logger = logging.getLogger(__name__)

QUEUE_NAME = "educonnect"

_queue: Queue | None = None


def init_tasks(app) -> None:
    """Connect the RQ queue when Redis is available. Call once from create_app()."""
    global _queue
    _queue = None

    redis_url = app.config.get("REDIS_URL", "")
    if not redis_url:
        app.logger.info("Task backend: synchronous (no REDIS_URL)")
        return
    try:
        conn = redis.Redis.from_url(redis_url)
        conn.ping()
    except redis.RedisError as e:
        app.logger.warning("Task backend: synchronous (Redis error: %s)", e)
        return
    _queue = Queue(QUEUE_NAME, connection=conn)
    app.logger.info("Task backend: RQ (%s)", redis_url)


def enqueue(func, *args, **kwargs):
    """Queue ``func`` on RQ if available, else call it now.

    Returns the RQ Job or the function's return value.
    """
    if _queue is not None:
        try:
            job = _queue.enqueue(func, *args, **kwargs)
            logger.debug("Enqueued %s (job=%s)", func.__name__, job.id)
            return job
        except redis.RedisError as e:
            logger.warning("RQ enqueue failed (%s), running inline: %s", func.__name__, e)

    logger.debug("Running %s synchronously", func.__name__)
    return func(*args, **kwargs)


def is_async_available() -> bool:
    return _queue is not None

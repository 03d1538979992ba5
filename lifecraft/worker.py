"""
Worker loop that consumes badge evaluation jobs.

Each job carries ``{"userId", "moduleId", "timestamp"}``. A job that fails is
logged and dropped; the processing marker it left behind expires on its own.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from lifecraft.badges import BadgeService
from lifecraft.config import get_settings
from lifecraft.dependencies import get_badge_service, get_queue_client
from lifecraft.logging_config import configure_logging
from lifecraft.queue import JobQueue

logger = logging.getLogger(__name__)


def process_next(
    *,
    badges: Optional[BadgeService] = None,
    queue: Optional[JobQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
) -> bool:
    """
    Fetch and process one badge job. Returns True if a job was handled,
    whether or not the evaluation succeeded.
    """
    badges = badges or get_badge_service()
    queue = queue or get_queue_client()

    message = queue.dequeue(block=block, timeout=timeout)
    if message is None:
        return False

    body = message.body
    user_id = body.get("userId")
    timestamp = body.get("timestamp")
    if timestamp:
        logger.info("Queue latency: %dms", int(time.time() * 1000) - int(timestamp))

    if not user_id:
        logger.warning("Dropping badge job without a userId: %r", body)
        queue.nack(message, requeue=False)
        return True

    try:
        new_badges = badges.evaluate_badges(user_id, body.get("moduleId"))
    except Exception:
        logger.exception("Badge processing failed for user %s", user_id)
        queue.nack(message, requeue=False)
        return True

    queue.ack(message)
    logger.info("Badge job done for %s: %d new badge(s)", user_id, len(new_badges))
    return True


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Blocking consume loop. Intended to be run under systemd/supervisor.
    """
    badges = get_badge_service()
    queue = get_queue_client()
    logger.info("Badge worker started")
    while True:
        processed = process_next(
            badges=badges, queue=queue, block=True, timeout=int(poll_interval_seconds)
        )
        if not processed:
            time.sleep(poll_interval_seconds)


def main() -> None:
    configure_logging(get_settings().log_level)
    run_loop()


if __name__ == "__main__":
    main()

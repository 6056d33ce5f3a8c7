"""Thread pool for side effects that must not block a request (email)."""

from __future__ import annotations

import logging
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, NamedTuple

logger = logging.getLogger(__name__)


class DeadLetter(NamedTuple):
    name: str
    args: tuple
    kwargs: dict
    error: Exception


_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="qtalent-bg")
# Bounded so a long SMTP outage cannot grow memory without limit
dead_letter_queue: deque[DeadLetter] = deque(maxlen=500)


def _attempt(func: Callable[..., Any], args: tuple, kwargs: dict, retries: int, backoff: float) -> Any:
    attempt = 1
    while True:
        try:
            return func(*args, **kwargs)
        except Exception as exc:
            logger.warning(
                "Background job %s failed (attempt %s of %s): %s",
                func.__name__,
                attempt,
                retries,
                exc,
            )
            if attempt >= retries:
                dead_letter_queue.append(DeadLetter(func.__name__, args, kwargs, exc))
                logger.error("Background job %s dead-lettered", func.__name__)
                raise
            time.sleep(backoff * attempt)
            attempt += 1


def enqueue(
    func: Callable[..., Any], *args: Any, retries: int = 3, backoff: float = 1, **kwargs: Any
) -> Future:
    """Run ``func`` on the pool, retrying with linear backoff.

    The returned future is the only handle on the job; nothing else keeps it
    alive once it finishes.
    """
    return _executor.submit(_attempt, func, args, kwargs, retries, backoff)


__all__ = ["DeadLetter", "dead_letter_queue", "enqueue"]

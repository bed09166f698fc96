"""Deferred execution of maintenance jobs on background threads."""

import threading
from typing import Any, Callable, List

from .logger import get_logger

logger = get_logger()


class ThreadScheduler:
    """
    Runs each scheduled job on its own ``threading.Timer``.

    A job's failure is logged on its thread; nothing is raised to the code
    that scheduled it.
    """

    def __init__(self):
        self._timers: List[threading.Timer] = []
        self._lock = threading.Lock()

    def run_after(self, delay: float, job: Callable, **kwargs: Any) -> threading.Timer:
        name = getattr(job, "__name__", repr(job))

        def run():
            try:
                job(**kwargs)
            except Exception as e:
                logger.error("Scheduled job failed", job=name, error_type=type(e).__name__, error=str(e))

        timer = threading.Timer(max(0.0, delay), run)
        timer.name = f"skillhub-{name}"
        with self._lock:
            self._timers.append(timer)
        timer.start()
        logger.info("Scheduled job", job=name, delay=delay, args=kwargs)
        return timer

    def wait(self, timeout: float = None) -> None:
        """Block until every scheduled job has finished."""
        with self._lock:
            timers = list(self._timers)
        for timer in timers:
            timer.join(timeout)

    def cancel_all(self) -> None:
        with self._lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()

"""Fire-and-forget dispatcher for post-decision side effects.

Persistence and notifications run on a small worker pool after the triage
decision is final. Their completion or failure never changes the decision
already returned to the user.

Failure Handling:
    - Exceptions inside a task are logged at ERROR level, never raised
    - A dispatcher that has been shut down drops the task and logs it
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


class SideEffectDispatcher:
    """Work queue for best-effort side effects."""

    def __init__(self, max_workers: int = 2):
        """Initialize dispatcher.

        Args:
            max_workers: Worker threads for side-effect tasks
        """
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="side-effect",
        )
        self._pending: List[Future] = []
        self._lock = threading.Lock()
        self._closed = False

        logger.info("SIDE_EFFECT_DISPATCHER_INITIALIZED", extra={"max_workers": max_workers})

    def dispatch(self, name: str, fn: Callable[..., Any], *args, **kwargs) -> Optional[Future]:
        """Queue a side effect and return immediately.

        Args:
            name: Task name for logs (e.g. "record_check_in")
            fn: Callable to run on a worker thread
            *args, **kwargs: Arguments for ``fn``

        Returns:
            The task's Future, or None if the dispatcher is closed
        """
        with self._lock:
            if self._closed:
                logger.error("SIDE_EFFECT_DROPPED", extra={"task": name, "reason": "dispatcher_closed"})
                return None
            future = self._executor.submit(self._run, name, fn, *args, **kwargs)
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(future)

        logger.info("SIDE_EFFECT_DISPATCHED", extra={"task": name})
        return future

    def _run(self, name: str, fn: Callable[..., Any], *args, **kwargs) -> bool:
        try:
            fn(*args, **kwargs)
        except Exception as e:
            logger.error(
                "SIDE_EFFECT_FAILED",
                extra={
                    "task": name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return False

        logger.info("SIDE_EFFECT_COMPLETED", extra={"task": name})
        return True

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued side effects.

        Returns:
            True if everything finished within ``timeout``
        """
        with self._lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait_for_pending)
        logger.info("SIDE_EFFECT_DISPATCHER_SHUTDOWN")

"""Task runners with per-key mutual exclusion.

A task whose key is already held is released back for another attempt after
``release_after`` seconds. A held key expires after ``expire_after`` seconds
even if its holder never released it, so a crashed worker cannot block a key
forever.
"""

import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from tax_event_ledger.exceptions import LockContentionError
from tax_event_ledger.logging_config import get_logger
from tax_event_ledger.services.interfaces import Task, TaskRunner

logger = get_logger(__name__)


class KeyedMutex:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._expiries: dict[str, float] = {}
        self._lock = threading.Lock()

    def acquire(self, key: str, expire_after: float) -> bool:
        with self._lock:
            now = self._clock()
            expiry = self._expiries.get(key)
            if expiry is not None and expiry > now:
                return False
            self._expiries[key] = now + expire_after
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._expiries.pop(key, None)

    def is_held(self, key: str) -> bool:
        with self._lock:
            expiry = self._expiries.get(key)
            return expiry is not None and expiry > self._clock()


class _MutexTaskRunner(TaskRunner):
    def __init__(self, mutex: KeyedMutex | None = None) -> None:
        self._mutex = mutex or KeyedMutex()

    def _attempt(self, task: Task, attempt: int) -> bool:
        """Run one attempt. Returns True when the task should be retried."""
        if not self._mutex.acquire(task.lock_key, task.expire_after):
            logger.debug("task_key_held", lock_key=task.lock_key, attempt=attempt)
            if attempt < task.tries:
                return True
            self._fail(task, LockContentionError(f"Task key is held: {task.lock_key}"))
            return False

        try:
            task.handle()
        except Exception as exc:
            logger.warning(
                "task_attempt_failed",
                lock_key=task.lock_key,
                attempt=attempt,
                error=str(exc),
            )
            if attempt < task.tries:
                return True
            self._fail(task, exc)
        finally:
            self._mutex.release(task.lock_key)
        return False

    def _fail(self, task: Task, exc: BaseException) -> None:
        try:
            task.failed(exc)
        except Exception:
            logger.exception("task_failed_handler_raised", lock_key=task.lock_key)


class InlineTaskRunner(_MutexTaskRunner):
    """Runs tasks synchronously in the caller's thread.

    A task dispatched from inside an open transaction runs inside it and sees
    its uncommitted writes. Payment deletion dispatches after commit, so its
    cash events behave the same under either runner.
    """

    def __init__(
        self,
        mutex: KeyedMutex | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(mutex)
        self._sleep = sleep

    def dispatch(self, task: Task) -> None:
        attempt = 1
        while self._attempt(task, attempt):
            self._sleep(task.release_after)
            attempt += 1

    def shutdown(self, wait: bool = True) -> None:
        pass


class ThreadPoolTaskRunner(_MutexTaskRunner):
    """Runs tasks on a thread pool, re-queuing contended ones after a delay."""

    def __init__(self, workers: int = 4, mutex: KeyedMutex | None = None) -> None:
        super().__init__(mutex)
        self._executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="tel-task"
        )
        self._timers: set[threading.Timer] = set()
        self._timers_lock = threading.Lock()
        self._closed = False

    def dispatch(self, task: Task) -> None:
        self._submit(task, 1)

    def _submit(self, task: Task, attempt: int) -> None:
        if self._closed:
            logger.warning("task_dropped_after_shutdown", lock_key=task.lock_key)
            return
        self._executor.submit(self._run, task, attempt)

    def _run(self, task: Task, attempt: int) -> None:
        if self._attempt(task, attempt):
            self._requeue(task, attempt + 1)

    def _requeue(self, task: Task, attempt: int) -> None:
        def fire() -> None:
            with self._timers_lock:
                self._timers.discard(timer)
            self._submit(task, attempt)

        timer = threading.Timer(task.release_after, fire)
        timer.daemon = True
        with self._timers_lock:
            self._timers.add(timer)
        timer.start()

    def shutdown(self, wait: bool = True) -> None:
        self._closed = True
        with self._timers_lock:
            for timer in self._timers:
                timer.cancel()
            self._timers.clear()
        self._executor.shutdown(wait=wait)

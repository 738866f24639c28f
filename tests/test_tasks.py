import threading
from collections.abc import Callable
from unittest.mock import MagicMock

import pytest

from tax_event_ledger.exceptions import LockContentionError
from tax_event_ledger.services import tasks as tasks_module
from tax_event_ledger.services.interfaces import Task
from tax_event_ledger.services.tasks import (
    InlineTaskRunner,
    KeyedMutex,
    ThreadPoolTaskRunner,
)


class RecordingTask(Task):
    def __init__(
        self,
        action: Callable[[], None] = lambda: None,
        *,
        key: str = "task-key",
        tries: int = 1,
        release_after: float = 0.5,
    ) -> None:
        self._action = action
        self._key = key
        self.tries = tries
        self.release_after = release_after
        self.calls = 0
        self.failures: list[BaseException] = []

    @property
    def lock_key(self) -> str:
        return self._key

    def handle(self) -> None:
        self.calls += 1
        self._action()

    def failed(self, exc: BaseException) -> None:
        self.failures.append(exc)


class FakeClock:
    def __init__(self) -> None:
        self.value = 100.0

    def __call__(self) -> float:
        return self.value


class TestKeyedMutex:
    def test_second_acquire_is_refused(self) -> None:
        mutex = KeyedMutex(FakeClock())
        assert mutex.acquire("a", 30)
        assert not mutex.acquire("a", 30)
        assert mutex.acquire("b", 30)

    def test_release(self) -> None:
        mutex = KeyedMutex(FakeClock())
        mutex.acquire("a", 30)
        mutex.release("a")
        assert not mutex.is_held("a")
        assert mutex.acquire("a", 30)

    def test_held_key_expires(self) -> None:
        clock = FakeClock()
        mutex = KeyedMutex(clock)
        mutex.acquire("a", 30)

        clock.value += 31

        assert not mutex.is_held("a")
        assert mutex.acquire("a", 30)


class TestInlineTaskRunner:
    def test_runs_and_releases_key(self) -> None:
        mutex = KeyedMutex()
        runner = InlineTaskRunner(mutex, sleep=lambda seconds: None)
        task = RecordingTask()

        runner.dispatch(task)

        assert task.calls == 1
        assert task.failures == []
        assert not mutex.is_held(task.lock_key)

    def test_retries_failed_attempt_after_release_delay(self) -> None:
        outcomes = [RuntimeError("flaky"), None]

        def action() -> None:
            outcome = outcomes.pop(0)
            if outcome:
                raise outcome

        sleeps: list[float] = []
        runner = InlineTaskRunner(sleep=sleeps.append)
        task = RecordingTask(action, tries=2, release_after=3.0)

        runner.dispatch(task)

        assert task.calls == 2
        assert sleeps == [3.0]
        assert task.failures == []

    def test_last_error_goes_to_failed(self) -> None:
        error = RuntimeError("always")

        def action() -> None:
            raise error

        runner = InlineTaskRunner(sleep=lambda seconds: None)
        task = RecordingTask(action, tries=3)

        runner.dispatch(task)

        assert task.calls == 3
        assert task.failures == [error]

    def test_held_key_fails_without_running(self) -> None:
        mutex = KeyedMutex()
        mutex.acquire("task-key", 30)
        runner = InlineTaskRunner(mutex, sleep=lambda seconds: None)
        task = RecordingTask()

        runner.dispatch(task)

        assert task.calls == 0
        [failure] = task.failures
        assert isinstance(failure, LockContentionError)

    def test_held_key_is_retried_once_released(self) -> None:
        mutex = KeyedMutex()
        mutex.acquire("task-key", 30)
        runner = InlineTaskRunner(mutex, sleep=lambda seconds: mutex.release("task-key"))
        task = RecordingTask(tries=2)

        runner.dispatch(task)

        assert task.calls == 1
        assert task.failures == []

    def test_raising_failed_handler_is_logged(self, monkeypatch) -> None:
        logger = MagicMock()
        monkeypatch.setattr(tasks_module, "logger", logger)

        class BrokenTask(RecordingTask):
            def failed(self, exc: BaseException) -> None:
                raise ValueError("handler broke")

        def action() -> None:
            raise RuntimeError("boom")

        InlineTaskRunner(sleep=lambda seconds: None).dispatch(BrokenTask(action))

        logger.exception.assert_called_once()
        assert logger.exception.call_args.args[0] == "task_failed_handler_raised"


class TestThreadPoolTaskRunner:
    def test_runs_task_on_worker(self) -> None:
        done = threading.Event()
        runner = ThreadPoolTaskRunner(workers=2)
        task = RecordingTask(done.set)

        runner.dispatch(task)

        assert done.wait(timeout=5)
        runner.shutdown()
        assert task.calls == 1

    def test_contended_task_is_requeued(self) -> None:
        mutex = KeyedMutex()
        mutex.acquire("task-key", 30)
        done = threading.Event()
        runner = ThreadPoolTaskRunner(workers=1, mutex=mutex)
        task = RecordingTask(done.set, tries=2, release_after=0.05)

        runner.dispatch(task)
        mutex.release("task-key")

        assert done.wait(timeout=5)
        runner.shutdown()
        assert task.failures == []

    def test_dispatch_after_shutdown_is_dropped(self) -> None:
        runner = ThreadPoolTaskRunner(workers=1)
        runner.shutdown()
        task = RecordingTask()

        runner.dispatch(task)

        assert task.calls == 0


@pytest.mark.parametrize("tries", [1, 2])
def test_inline_runner_calls_failed_once(tries: int) -> None:
    def action() -> None:
        raise RuntimeError("nope")

    task = RecordingTask(action, tries=tries)
    InlineTaskRunner(sleep=lambda seconds: None).dispatch(task)
    assert len(task.failures) == 1

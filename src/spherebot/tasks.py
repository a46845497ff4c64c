"""Worker-thread queue for event tasks and best-effort background work."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from queue import Empty, Queue
from threading import Event, Lock, Thread
from typing import Any, Callable, Protocol

from spherebot.logging import get_logger

logger = get_logger(__name__)

# Most recent task failures kept for inspection; older ones are only logged
MAX_KEPT_ERRORS = 100


class TaskRunner(Protocol):
    def add_task(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any: ...


@dataclass
class Task:
    """A unit of work plus the error it raised, if any."""

    func: Callable[..., Any]
    args: tuple[Any, ...] = ()
    kwargs: dict[str, Any] = field(default_factory=dict)
    label: str = ""
    error: Exception | None = field(default=None, init=False)

    def run(self) -> None:
        self.func(*self.args, **self.kwargs)


class TaskQueue:
    """Run submitted callables on ``max_workers`` daemon threads.

    Tasks never propagate exceptions to the submitter: failures are logged,
    stored on the task and the latest ``max_errors`` are kept for
    :meth:`get_errors`. Submitted tasks always run to completion; :meth:`stop`
    waits for the queue to drain.
    """

    def __init__(
        self,
        max_workers: int = 1,
        *,
        name: str = "spherebot-worker",
        max_errors: int = MAX_KEPT_ERRORS,
    ) -> None:
        self._queue: Queue[Task | None] = Queue()
        self._stop_event = Event()
        self._max_workers = max(1, int(max_workers))
        self._name = name
        self._threads: list[Thread] = []
        self._started = False
        self._start_lock = Lock()
        self._errors: deque[Exception] = deque(maxlen=max_errors)
        self._error_lock = Lock()

    def start(self) -> None:
        with self._start_lock:
            if self._started:
                return
            self._stop_event.clear()
            for index in range(self._max_workers):
                thread = Thread(target=self._worker, name=f"{self._name}-{index}", daemon=True)
                thread.start()
                self._threads.append(thread)
            self._started = True

    def stop(self) -> None:
        """Finish queued tasks, then stop the worker threads."""

        self._queue.join()
        self._stop_event.set()
        for _ in self._threads:
            self._queue.put(None)
        for thread in self._threads:
            if thread.is_alive():
                thread.join()
        self._threads.clear()
        self._started = False

    def add_task(self, func: Callable[..., Any], *args: Any, label: str = "", **kwargs: Any) -> Task:
        task = Task(func, args, kwargs, label=label or getattr(func, "__name__", "task"))
        if not self._started:
            self.start()
        self._queue.put(task)
        return task

    def join(self) -> None:
        """Block until every submitted task has finished."""

        self._queue.join()

    def get_errors(self, clear: bool = False) -> list[Exception]:
        with self._error_lock:
            errors = list(self._errors)
            if clear:
                self._errors.clear()
        return errors

    def _worker(self) -> None:
        while not self._stop_event.is_set():
            try:
                task = self._queue.get(timeout=0.1)
            except Empty:
                continue
            if task is None:
                self._queue.task_done()
                break
            try:
                task.run()
            except Exception as exc:
                task.error = exc
                logger.exception("Task %s raised: %s", task.label, exc)
                with self._error_lock:
                    self._errors.append(exc)
            finally:
                self._queue.task_done()


class InlineRunner:
    """Run tasks synchronously in the caller's thread, logging failures.

    Used where ordering matters more than latency (CLI commands, tests).
    """

    def __init__(self, *, max_errors: int = MAX_KEPT_ERRORS) -> None:
        self.errors: deque[Exception] = deque(maxlen=max_errors)

    def add_task(self, func: Callable[..., Any], *args: Any, label: str = "", **kwargs: Any) -> Task:
        task = Task(func, args, kwargs, label=label or getattr(func, "__name__", "task"))
        try:
            task.run()
        except Exception as exc:
            task.error = exc
            self.errors.append(exc)
            logger.exception("Task %s raised: %s", task.label, exc)
        return task

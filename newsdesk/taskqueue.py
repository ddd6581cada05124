"""Priority/dependency task queue and a thread-based worker pool.

The queue is agnostic to what tasks do. Lower ``priority`` is served first,
insertion order breaks ties. A task becomes eligible once every dependency
has settled (completed or permanently failed), so a failed upstream never
deadlocks its dependents.
"""

from __future__ import annotations

import itertools
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from newsdesk.utils import get_logger

logger = get_logger(__name__)


class TaskTimeout(RuntimeError):
    pass


@dataclass
class Task:
    type: str
    cluster_id: Optional[str] = None
    priority: int = 5
    dependencies: List[str] = field(default_factory=list)
    payload: Dict[str, Any] = field(default_factory=dict)
    retries: int = 0
    max_retries: int = 2
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class TaskResult:
    task_id: str
    success: bool
    value: Any = None
    error: Optional[str] = None
    duration_s: float = 0.0


@dataclass
class QueueStats:
    queued: int
    running: int
    completed: int
    failed: int


class TaskQueue:
    def __init__(self):
        self._lock = threading.Lock()
        self._seq = itertools.count()
        self._queued: List[tuple] = []
        self._known: Dict[str, Task] = {}
        self._running: Dict[str, Task] = {}
        self._completed: Dict[str, TaskResult] = {}
        self._failed: Dict[str, TaskResult] = {}

    def _push(self, task: Task) -> None:
        self._queued.append((task.priority, next(self._seq), task))
        self._queued.sort(key=lambda e: (e[0], e[1]))

    def add_task(self, task: Task) -> str:
        with self._lock:
            self._known[task.id] = task
            self._push(task)
        return task.id

    def add_tasks(self, tasks: List[Task]) -> List[str]:
        return [self.add_task(t) for t in tasks]

    def _settled(self, dep_id: str) -> bool:
        # ids the queue never saw cannot block anything
        if dep_id not in self._known:
            return True
        return dep_id in self._completed or dep_id in self._failed

    def get_next_task(self) -> Optional[Task]:
        """Pop the best eligible task, or None without blocking."""
        with self._lock:
            for i, (_, _, task) in enumerate(self._queued):
                if all(self._settled(d) for d in task.dependencies):
                    del self._queued[i]
                    self._running[task.id] = task
                    return task
        return None

    def complete_task(self, task_id: str, value: Any = None, duration_s: float = 0.0) -> None:
        with self._lock:
            self._running.pop(task_id, None)
            self._completed[task_id] = TaskResult(task_id, True, value=value, duration_s=duration_s)

    def fail_task(self, task_id: str, error: str, duration_s: float = 0.0) -> bool:
        """Requeue while retries remain; returns True when the task was requeued."""
        with self._lock:
            task = self._running.pop(task_id, None)
            if task is None:
                logger.warning("fail_task ignored for task=%s: not running", task_id[:8])
                return False
            if task.retries < task.max_retries:
                task.retries += 1
                self._push(task)
                return True
            self._failed[task_id] = TaskResult(task_id, False, error=error, duration_s=duration_s)
            return False

    def result(self, task_id: str) -> Optional[TaskResult]:
        with self._lock:
            return self._completed.get(task_id) or self._failed.get(task_id)

    def is_complete(self) -> bool:
        with self._lock:
            return not self._queued and not self._running

    def stats(self) -> QueueStats:
        with self._lock:
            return QueueStats(
                queued=len(self._queued),
                running=len(self._running),
                completed=len(self._completed),
                failed=len(self._failed),
            )


class WorkerPool:
    """N polling workers; each task body runs under a fixed timeout.

    A task that times out is failed (and possibly requeued); whatever it
    eventually returns is discarded.
    """

    def __init__(
        self,
        queue: TaskQueue,
        executor: Callable[[Task], Any],
        *,
        concurrency: int = 4,
        timeout_s: float = 60.0,
        poll_interval_s: float = 0.05,
    ):
        self.queue = queue
        self.executor = executor
        self.concurrency = max(1, int(concurrency))
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s
        self._stop = threading.Event()
        self._workers: List[threading.Thread] = []

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._stop.is_set()

    def start(self) -> None:
        if self._workers:
            return
        self._stop.clear()
        for i in range(self.concurrency):
            t = threading.Thread(target=self._loop, args=(i,), name=f"newsdesk-worker-{i}", daemon=True)
            t.start()
            self._workers.append(t)
        logger.info("worker pool started concurrency=%d timeout_s=%.1f", self.concurrency, self.timeout_s)

    def _loop(self, idx: int) -> None:
        while not self._stop.is_set():
            task = self.queue.get_next_task()
            if task is None:
                self._stop.wait(self.poll_interval_s)
                continue
            self._execute(idx, task)

    def _execute(self, idx: int, task: Task) -> None:
        box: Dict[str, Any] = {}
        started = threading.Event()
        done = threading.Event()

        def body() -> None:
            started.set()
            try:
                box["value"] = self.executor(task)
            except Exception as exc:
                box["error"] = exc
            finally:
                done.set()

        # one thread per body: a hung body never holds a slot another task waits on
        runner = threading.Thread(target=body, name=f"newsdesk-task-{task.id[:8]}", daemon=True)
        runner.start()
        started.wait()
        t0 = time.monotonic()
        if not done.wait(self.timeout_s):
            self._failed(idx, task, TaskTimeout(f"task {task.type} timed out after {self.timeout_s:.1f}s"), t0)
            return
        if "error" in box:
            self._failed(idx, task, box["error"], t0)
            return
        value = box.get("value")
        duration = time.monotonic() - t0
        self.queue.complete_task(task.id, value, duration)
        logger.debug("worker=%d task=%s type=%s cluster=%s ok took_ms=%d",
                     idx, task.id[:8], task.type, task.cluster_id, int(duration * 1000))

    def _failed(self, idx: int, task: Task, exc: Exception, t0: float) -> None:
        duration = time.monotonic() - t0
        requeued = self.queue.fail_task(task.id, f"{type(exc).__name__}: {exc}", duration)
        logger.warning(
            "worker=%d task=%s type=%s cluster=%s failed retries=%d/%d requeued=%s: %s",
            idx, task.id[:8], task.type, task.cluster_id, task.retries, task.max_retries, requeued, exc,
        )

    def wait_for_completion(self, timeout_s: Optional[float] = None) -> bool:
        deadline = None if timeout_s is None else time.monotonic() + timeout_s
        while not self.queue.is_complete():
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(self.poll_interval_s)
        return True

    def stop(self) -> None:
        """Stop taking new tasks and wait for in-flight workers to drain."""
        self._stop.set()
        for t in self._workers:
            t.join()
        self._workers = []
        s = self.queue.stats()
        logger.info("worker pool stopped queued=%d running=%d completed=%d failed=%d",
                    s.queued, s.running, s.completed, s.failed)

    def run(self, timeout_s: Optional[float] = None) -> QueueStats:
        self.start()
        try:
            self.wait_for_completion(timeout_s)
        finally:
            self.stop()
        return self.queue.stats()

"""
=============================================================================
WORKER THREAD POOL
=============================================================================

Every accepted connection needs its own thread of execution: parsing,
the handler and the response write are all blocking calls, and one slow
client must not hold up anybody else.

Spawning a fresh thread per connection would work, but it puts no limit
on how many threads exist at once. The pool below bounds that:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        POOL LAYOUT                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept loop ──submit()──► ┌──────────────────────┐                │
    │                             │  queue (bounded)     │                │
    │                             │  [conn][conn][conn]  │                │
    │                             └──────────┬───────────┘                │
    │                                        │ get()                       │
    │                   ┌────────────────────┼────────────────────┐       │
    │                   ▼                    ▼                    ▼       │
    │              Worker-0             Worker-1     ...     Worker-N     │
    │           (min_workers at start, grows up to max_workers)           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

- submit() never blocks the accept loop: a full queue returns False.
- A new worker is added whenever every existing worker is busy and work
  is waiting, up to max_workers.
- Shutdown drains the queue, then sends each worker a None "poison pill".

=============================================================================
"""

import logging
import queue
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


class Worker(threading.Thread):
    """
    Worker thread that runs submitted callables from the shared queue.

    A failing task is logged and counted; the worker keeps going.
    """

    def __init__(self, task_queue: queue.Queue, worker_id: int, idle_timeout: float = 1.0):
        # daemon=True: a stuck client cannot keep the process alive on exit
        super().__init__(name=f"simplehttpd-worker-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._stop_event = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")

        while not self._stop_event.is_set():
            try:
                task = self.task_queue.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute(task)
            finally:
                self.task_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, task: tuple):
        func, args, kwargs = task
        self.state = WorkerState.BUSY
        start_time = time.time()

        try:
            func(*args, **kwargs)
            self.tasks_completed += 1
        except Exception as e:
            elapsed = time.time() - start_time
            logger.exception(f"Worker {self.worker_id} task failed after {elapsed:.3f}s: {e}")
            self.tasks_failed += 1
        finally:
            self.state = WorkerState.IDLE

    def stop(self):
        """Ask the worker to exit after its current task."""
        self._stop_event.set()


class ThreadPool:
    """
    Bounded, auto-growing pool of worker threads.

    Usage:
        pool = ThreadPool(min_workers=2, max_workers=8, queue_size=64)
        pool.start()
        if not pool.submit(handle, conn):
            conn.close()          # overloaded
        ...
        pool.shutdown()
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 128,
        idle_timeout: float = 1.0,
    ):
        """
        Args:
            min_workers: Threads created by start().
            max_workers: Hard cap on live threads.
            queue_size: Tasks that may wait for a free worker.
            idle_timeout: How often an idle worker re-checks for stop().
        """
        if min_workers < 1 or max_workers < min_workers:
            raise ValueError("Need 1 <= min_workers <= max_workers")

        self.min_workers = min_workers
        self.max_workers = max_workers
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._task_queue: "queue.Queue[Optional[tuple]]" = queue.Queue(maxsize=queue_size)
        self._workers: list = []
        self._lock = threading.Lock()  # Guards _workers and _next_worker_id
        self._next_worker_id = 0
        self._started = False
        self._shutting_down = False

    def start(self):
        """Start min_workers threads. A second call is a no-op."""
        with self._lock:
            if self._started:
                return
            self._shutting_down = False
            for _ in range(self.min_workers):
                self._spawn_worker()
            self._started = True

        logger.info(f"Thread pool started with {self.min_workers} workers (max {self.max_workers})")

    def _spawn_worker(self) -> Worker:
        # Caller holds self._lock
        worker = Worker(self._task_queue, self._next_worker_id, self.idle_timeout)
        self._next_worker_id += 1
        self._workers.append(worker)
        worker.start()
        return worker

    def submit(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        """
        Queue func(*args, **kwargs) for a worker.

        Never blocks.

        Returns:
            True if queued, False if the queue is full.

        Raises:
            RuntimeError: If the pool is not running.
        """
        if not self._started or self._shutting_down:
            raise RuntimeError("Thread pool is not running")

        try:
            self._task_queue.put_nowait((func, args, kwargs))
        except queue.Full:
            return False

        self._maybe_grow()
        return True

    def _maybe_grow(self):
        with self._lock:
            live = [w for w in self._workers if w.state != WorkerState.STOPPED]
            if len(live) >= self.max_workers:
                return
            all_busy = all(w.state == WorkerState.BUSY for w in live)
            if all_busy and self._task_queue.qsize() > 0:
                logger.debug(f"Scaling up: {len(live)} -> {len(live) + 1} workers")
                self._spawn_worker()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued tasks run first.
            timeout: Upper bound (seconds) on waiting for the queue to
                     drain; None waits indefinitely.
        """
        if not self._started:
            return

        logger.info("Shutting down thread pool...")
        self._shutting_down = True

        if wait:
            deadline = None if timeout is None else time.time() + timeout
            while self._task_queue.unfinished_tasks:
                if deadline is not None and time.time() > deadline:
                    logger.warning("Thread pool shutdown timed out with tasks still running")
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)
            self._workers.clear()
            self._started = False

        for worker in workers:
            worker.stop()
            try:
                self._task_queue.put_nowait(None)
            except queue.Full:
                pass  # Worker will see the stop flag on its next idle timeout

        for worker in workers:
            worker.join(timeout=2.0)

        logger.info("Thread pool shutdown complete")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def worker_count(self) -> int:
        return sum(1 for w in self._workers if w.state != WorkerState.STOPPED)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in self._workers if w.state == WorkerState.BUSY)

    @property
    def queued(self) -> int:
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """Worker and task counters, for logs and debugging."""
        return {
            "workers": self.worker_count,
            "busy": self.busy_workers,
            "queued": self.queued,
            "completed": sum(w.tasks_completed for w in self._workers),
            "failed": sum(w.tasks_failed for w in self._workers),
        }

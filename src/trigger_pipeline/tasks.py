# src/trigger_pipeline/tasks.py

import logging
import threading
import time
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)

STATUS_PENDING = 'pending'
STATUS_RUNNING = 'running'
STATUS_ERROR = 'error'
STATUS_STOPPED = 'stopped'


@dataclass
class Task:
    id: str
    name: str
    interval: float
    work: object
    start_delay: float = 0.0
    status: str = STATUS_PENDING
    last_error: object = None
    last_run_time: float = None


class _TaskHandle:
    def __init__(self, task):
        self.task = task
        self.stop_event = threading.Event()
        self.thread = None
        self.stopped = False


class TaskRunner:
    """
    Runs registered units of work on their own threads: once after the start
    delay, then every 'interval' seconds until stopped. A failing run is
    logged and recorded on the task, and the next tick still happens.
    """

    def __init__(self, shutdown_flag=None):
        self.shutdown_flag = shutdown_flag or threading.Event()
        self._lock = threading.Lock()
        self._handles = {}

    def add_task(self, task_id, name, interval, work, start_delay=0.0):
        if interval <= 0:
            raise ValueError(f"Task '{task_id}' needs a positive interval, got {interval}")
        with self._lock:
            if task_id in self._handles:
                raise ValueError(f"Task '{task_id}' is already registered")
            task = Task(id=task_id, name=name, interval=interval, work=work, start_delay=start_delay)
            self._handles[task_id] = _TaskHandle(task)
        logger.info(f"Registered task '{name}' ({task_id}), interval {interval}s")

    def _sleep_or_stop(self, handle, seconds):
        """Waits 'seconds'; True if the task was stopped meanwhile."""
        deadline = time.monotonic() + seconds
        while True:
            if handle.stop_event.is_set() or self.shutdown_flag.is_set():
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            handle.stop_event.wait(min(remaining, 0.5))

    def _run_once(self, handle):
        task = handle.task
        try:
            task.work(handle.stop_event)
        except Exception as e:
            logger.error(f"Task '{task.name}' failed: {e}", exc_info=True)
            with self._lock:
                if not handle.stopped:
                    task.status = STATUS_ERROR
                task.last_error = e
                task.last_run_time = time.time()
            return
        with self._lock:
            if not handle.stopped:
                task.status = STATUS_RUNNING
            task.last_error = None
            task.last_run_time = time.time()

    def _loop(self, handle):
        if handle.task.start_delay > 0 and self._sleep_or_stop(handle, handle.task.start_delay):
            return
        while True:
            self._run_once(handle)
            if self._sleep_or_stop(handle, handle.task.interval):
                break
        logger.info(f"Task '{handle.task.name}' stopped")

    def start_task(self, task_id):
        with self._lock:
            handle = self._handles.get(task_id)
            if handle is None:
                raise KeyError(f"No task registered with id '{task_id}'")
            if handle.thread is not None:
                raise RuntimeError(f"Task '{task_id}' has already been started")
            handle.task.status = STATUS_RUNNING
            handle.thread = threading.Thread(
                target=self._loop, args=(handle,), name=f"task-{task_id}", daemon=True
            )
        handle.thread.start()

    def start_all(self):
        """Starts every registered task. Returns (started_count, last_error)."""
        started = 0
        last_error = None
        with self._lock:
            task_ids = list(self._handles)
        for task_id in task_ids:
            try:
                self.start_task(task_id)
                started += 1
            except (KeyError, RuntimeError) as e:
                logger.warning(f"Could not start task '{task_id}': {e}")
                last_error = e
        logger.info(f"Started {started}/{len(task_ids)} tasks")
        return started, last_error

    def stop_task(self, task_id):
        with self._lock:
            handle = self._handles.get(task_id)
            if handle is None or handle.stopped:
                return
            handle.stopped = True
            handle.task.status = STATUS_STOPPED
        handle.stop_event.set()

    def remove_task(self, task_id, timeout=None):
        self.stop_task(task_id)
        with self._lock:
            handle = self._handles.pop(task_id, None)
        if handle is not None and handle.thread is not None:
            handle.thread.join(timeout)

    def stop_all(self, timeout=None):
        """Stops every task and waits for their threads. False if any is still alive."""
        with self._lock:
            task_ids = list(self._handles)
        for task_id in task_ids:
            self.stop_task(task_id)

        deadline = None if timeout is None else time.monotonic() + timeout
        all_stopped = True
        with self._lock:
            handles = list(self._handles.values())
        for handle in handles:
            if handle.thread is None:
                continue
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            handle.thread.join(remaining)
            if handle.thread.is_alive():
                logger.warning(f"Task '{handle.task.name}' did not stop in time")
                all_stopped = False
        return all_stopped

    def get_task(self, task_id):
        """Returns a snapshot of the task's bookkeeping, or None."""
        with self._lock:
            handle = self._handles.get(task_id)
            return replace(handle.task) if handle else None

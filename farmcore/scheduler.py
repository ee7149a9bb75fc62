# farmcore/scheduler.py
# Periodic game tasks: one daemon thread per task, passes serialized by a
# scheduler-wide lock, ordered stop hooks for the final save and flush.

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

log = logging.getLogger(__name__)


@dataclass
class PeriodicTask:
    name: str
    interval: float
    fn: Callable[[], object]
    last_run: Optional[float] = None
    runs: int = 0
    failures: int = 0


class TaskScheduler:
    """
    Background helper running every registered periodic task on its own
    daemon thread.

    Passes never overlap: a scheduler-wide lock is held while a task runs.
    ``stop(flush=True)`` waits for the threads, then runs the stop hooks
    (final saves, store flush) in registration order.
    """

    def __init__(self, join_timeout: float = 10.0) -> None:
        self.join_timeout = join_timeout
        self._tasks: Dict[str, PeriodicTask] = {}
        self._threads: List[threading.Thread] = []
        self._stop = threading.Event()
        self._pass_lock = threading.Lock()
        self._stop_hooks: List[Callable[[], object]] = []

    def add_task(self, name: str, interval: float, fn: Callable[[], object]) -> PeriodicTask:
        if name in self._tasks:
            raise ValueError(f"Task '{name}' already registered")
        task = PeriodicTask(name=name, interval=max(0.01, float(interval)), fn=fn)
        self._tasks[name] = task
        return task

    def add_stop_hook(self, fn: Callable[[], object]) -> None:
        self._stop_hooks.append(fn)

    @property
    def tasks(self) -> Dict[str, PeriodicTask]:
        return dict(self._tasks)

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._threads = []
        for task in self._tasks.values():
            log.info("Starting periodic task %s (interval=%ss)", task.name, task.interval)
            thread = threading.Thread(
                target=self._run, args=(task,), name=f"farmcore-{task.name}", daemon=True
            )
            self._threads.append(thread)
            thread.start()

    def stop(self, flush: bool = True) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout=self.join_timeout)
            if thread.is_alive():
                log.warning("Periodic task thread %s did not stop in time", thread.name)
        self._threads = []

        if not flush:
            return
        for hook in self._stop_hooks:
            try:
                hook()
            except Exception:  # noqa: BLE001
                log.exception("Stop hook failed")

    def _run(self, task: PeriodicTask) -> None:
        while not self._stop.wait(task.interval):
            self._execute(task)

    def _execute(self, task: PeriodicTask) -> bool:
        with self._pass_lock:
            task.last_run = time.monotonic()
            task.runs += 1
            try:
                task.fn()
            except Exception:  # noqa: BLE001
                task.failures += 1
                log.exception("Periodic task %s failed", task.name)
                return False
        return True

    def run_once(self, name: Optional[str] = None) -> Dict[str, bool]:
        """Run one task (or all of them) right now, on the calling thread."""
        names = [name] if name else list(self._tasks)
        return {n: self._execute(self._tasks[n]) for n in names}


def should_start_scheduler() -> bool:
    env_switch = os.environ.get("FARMCORE_AUTO_TICKS", "1").lower()
    return env_switch not in {"0", "off", "false", "no"}

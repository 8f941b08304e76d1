"""Periodic tasks driven by an injectable clock."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from installment_ledger.clock import Clock
from installment_ledger.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """A callable due every ``interval``."""

    name: str
    interval: timedelta
    func: Callable[[], Any]
    next_run: datetime
    runs: int = 0
    failures: int = 0


@dataclass
class TaskRun:
    """Outcome of one task execution."""

    name: str
    started_at: datetime
    succeeded: bool
    result: Any = None
    error: str | None = None


@dataclass
class Scheduler:
    """Runs registered tasks whenever the clock says they are due.

    Nothing runs on its own: call ``run_pending()`` (tests advance a
    ``FixedClock`` between calls) or ``run_forever()`` for a real process.
    A failing task is logged and rescheduled; it never stops the others.
    """

    clock: Clock
    tasks: dict[str, ScheduledTask] = field(default_factory=dict)

    def add_task(
        self,
        name: str,
        interval: timedelta,
        func: Callable[[], Any],
        run_immediately: bool = False,
    ) -> ScheduledTask:
        """Register ``func`` to run every ``interval``."""
        if interval <= timedelta(0):
            raise ConfigurationError(f"Task {name} needs a positive interval")
        if name in self.tasks:
            raise ConfigurationError(f"Task {name} is already registered")

        now = self.clock.now()
        task = ScheduledTask(
            name=name,
            interval=interval,
            func=func,
            next_run=now if run_immediately else now + interval,
        )
        self.tasks[name] = task
        logger.debug("Scheduled %s every %s", name, interval)
        return task

    def run_pending(self) -> list[TaskRun]:
        """Run every task whose time has come, once each."""
        now = self.clock.now()
        runs: list[TaskRun] = []
        for task in self.tasks.values():
            if task.next_run > now:
                continue
            runs.append(self._run(task, now))
            # Missed intervals collapse into a single run
            while task.next_run <= now:
                task.next_run += task.interval
        return runs

    def run_forever(
        self,
        poll_seconds: float = 60.0,
        max_iterations: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Poll ``run_pending`` until interrupted or ``max_iterations`` is reached."""
        iterations = 0
        logger.info("Scheduler started with %d task(s)", len(self.tasks))
        try:
            while max_iterations is None or iterations < max_iterations:
                self.run_pending()
                iterations += 1
                sleep(poll_seconds)
        except KeyboardInterrupt:
            logger.info("Scheduler interrupted")

    def _run(self, task: ScheduledTask, now: datetime) -> TaskRun:
        task.runs += 1
        try:
            result = task.func()
        except Exception as e:
            task.failures += 1
            logger.exception(
                "Scheduled task %s failed", task.name, extra={"context": {"task": task.name}}
            )
            return TaskRun(name=task.name, started_at=now, succeeded=False, error=str(e))
        logger.info(
            "Scheduled task %s finished: %s",
            task.name,
            result,
            extra={"context": {"task": task.name, "run": task.runs}},
        )
        return TaskRun(name=task.name, started_at=now, succeeded=True, result=result)

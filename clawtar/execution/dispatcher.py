"""
Worker Dispatcher for Clawtar
Single-flight execution: at most one paid task runs at a time
"""

import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import structlog

from clawtar.execution.brief import build_structured_brief
from clawtar.models import Task, TaskStatus
from clawtar.state import EntityStore

logger = structlog.get_logger()

GENERIC_FAILURE = "task execution failed"

WorkFunction = Callable[[str], Union[Dict[str, Any], Awaitable[Dict[str, Any]]]]


class WorkerDispatcher:
    """
    Promotes the first paid task (store order) through
    paid -> running -> completed/failed.

    The busy flag is checked and set without suspending, so concurrent
    trigger() calls on the event loop never run two tasks at once.
    """

    def __init__(self, store: EntityStore, work_fn: WorkFunction = build_structured_brief):
        self.store = store
        self.work_fn = work_fn
        self.busy = False

    async def trigger(self) -> Optional[Task]:
        """Run at most one paid task; returns it, or None when idle or busy"""
        if self.busy:
            return None

        task = self.store.first_task_with_status(TaskStatus.PAID)
        if task is None:
            return None

        self.busy = True
        try:
            await self._run(task)
        except Exception as e:
            logger.error("dispatcher_error", task_id=task.id, error=str(e))
        finally:
            self.busy = False
        return task

    async def _run(self, task: Task) -> None:
        self.store.transition(task.id, TaskStatus.RUNNING)
        metrics = self.store.state.metrics

        try:
            result = self.work_fn(task.input)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            # Internal detail stays in the log; the task only records a generic error
            logger.error("dispatcher_task_failed", task_id=task.id, error=str(e))
            metrics.tasks_failed_total += 1
            metrics.worker_runs_total += 1
            self._finish(task, TaskStatus.FAILED, error=GENERIC_FAILURE)
        else:
            metrics.tasks_completed_total += 1
            metrics.worker_runs_total += 1
            self._finish(task, TaskStatus.COMPLETED, result=result)

    def _finish(self, task: Task, status: TaskStatus, **changes: Any) -> None:
        try:
            self.store.transition(task.id, status, **changes)
        except Exception as e:
            logger.error(
                "dispatcher_commit_failed",
                task_id=task.id,
                to_status=status.value,
                error=str(e)
            )

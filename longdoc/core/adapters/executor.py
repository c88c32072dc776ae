"""
Bounded executor: runs translation tasks under shared concurrency slots with
retry, backoff and per-task failure isolation.

Every attempt holds a slot only while it talks to the model. The slot is
released before the backoff sleep so a task waiting to retry never blocks
the others. A task that exhausts its attempts falls back to its original
content and never affects its siblings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from longdoc.core.interfaces import IConcurrencySlots
from .concurrency import SemaphoreSlots
from .exceptions import TranslationTaskExhaustedError
from .retry_manager import RetryPolicy
from .tasks import TaskKey, TaskKind, TaskResult, TranslationTask

logger = logging.getLogger(__name__)

TranslateFn = Callable[[TranslationTask, int], Awaitable[str]]


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class _Aborted(Exception):
    """The global abort signal fired while waiting."""


def text_failure_marker(task: TranslationTask, attempts: int, aborted: bool = False) -> str:
    """Original chunk wrapped in a visible failure notice."""
    if aborted:
        notice = f"Translation aborted - original text kept, part {task.index + 1}"
    else:
        notice = f"Translation failed after {attempts} attempts - original text kept, part {task.index + 1}"
    return f"\n\n> **[{notice}]**\n\n{task.content}\n\n"


@dataclass
class ExecutionReport:
    """Per-task results plus the aggregate error flags."""
    results: Dict[TaskKey, TaskResult] = field(default_factory=dict)
    has_errors: bool = False
    aborted: bool = False

    def failed(self) -> List[TaskResult]:
        return [r for r in self.results.values() if not r.success]

    def results_of(self, kind: TaskKind) -> Dict[int, TaskResult]:
        return {key[1]: r for key, r in self.results.items() if key[0] == kind}


class BoundedExecutor:
    """Runs tasks concurrently under externally bounded slots."""

    def __init__(
        self,
        slots: Optional[IConcurrencySlots] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        log_callback: Optional[Callable[[str, str], None]] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None
    ):
        """
        Args:
            slots: Shared concurrency slots (default: a fresh SemaphoreSlots)
            retry_policy: Retry bound and backoff
            sleep: Awaitable sleep in seconds (injectable for tests)
            log_callback: Callback for progress logging (log_type, message)
            progress_callback: Called with (completed, total) after each task
        """
        self.slots = slots if slots is not None else SemaphoreSlots()
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self.log_callback = log_callback
        self.progress_callback = progress_callback

    def _log(self, log_type: str, message: str):
        """Send to the callback when one is set, to the module logger otherwise."""
        if self.log_callback:
            self.log_callback(log_type, message)
        else:
            logger.log(_LEVELS.get(log_type, logging.INFO), message)

    async def run(
        self,
        tasks: List[TranslationTask],
        translate_fn: TranslateFn,
        abort_event: Optional[asyncio.Event] = None
    ) -> ExecutionReport:
        """
        Run every task to completion or fallback.

        Args:
            tasks: Text and table tasks (keys must be unique)
            translate_fn: ``async (task, attempt) -> translated content``
            abort_event: Global abort signal; cancels in-flight attempts

        Returns:
            ExecutionReport with one result per task
        """
        keys = [task.key for task in tasks]
        if len(set(keys)) != len(keys):
            raise ValueError("Task keys must be unique")

        report = ExecutionReport()
        total = len(tasks)
        completed = 0

        async def run_one(task: TranslationTask):
            nonlocal completed
            await self._run_task(task, translate_fn, abort_event, report.results)
            completed += 1
            if self.progress_callback:
                self.progress_callback(completed, total)

        await asyncio.gather(*(run_one(task) for task in tasks))

        report.has_errors = any(not r.success for r in report.results.values())
        report.aborted = abort_event is not None and abort_event.is_set()
        if report.has_errors:
            self._log("warning", f"{len(report.failed())}/{len(tasks)} task(s) fell back to original content")
        return report

    async def _run_task(
        self,
        task: TranslationTask,
        translate_fn: TranslateFn,
        abort_event: Optional[asyncio.Event],
        results: Dict[TaskKey, TaskResult]
    ):
        policy = self.retry_policy
        last_error: Optional[Exception] = None
        attempts = 0
        aborted = False

        for attempt in range(policy.max_attempts):
            if abort_event is not None and abort_event.is_set():
                aborted = True
                break

            try:
                await self._race(self.slots.acquire(), abort_event)
            except _Aborted:
                aborted = True
                break

            attempts += 1
            try:
                content = await self._race(translate_fn(task, attempt), abort_event)
            except _Aborted:
                aborted = True
                break
            except Exception as e:
                last_error = e
                self._log(
                    "warning",
                    f"[{task.unit_id}] Attempt {attempts}/{policy.max_attempts} failed: "
                    f"{type(e).__name__}: {e}"
                )
            else:
                results[task.key] = TaskResult(
                    key=task.key,
                    content=content,
                    success=True,
                    attempts=attempts,
                    placeholder=getattr(task, 'placeholder', None),
                )
                if attempts > 1:
                    self._log("info", f"[{task.unit_id}] Succeeded after {attempts} attempts")
                return
            finally:
                self.slots.release()

            if not policy.should_retry(attempt, last_error):
                break

            delay_ms = policy.delay_for(attempt, last_error)
            self._log("debug", f"[{task.unit_id}] Retrying in {delay_ms:.0f}ms")
            try:
                await self._race(self._sleep(delay_ms / 1000), abort_event)
            except _Aborted:
                aborted = True
                break

        results[task.key] = self._fallback(task, attempts, last_error, aborted)

    def _fallback(self, task: TranslationTask, attempts: int,
                  last_error: Optional[Exception], aborted: bool) -> TaskResult:
        if aborted:
            self._log("warning", f"[{task.unit_id}] Aborted, keeping original content")
        else:
            self._log("error", f"[{task.unit_id}] Giving up after {attempts} attempt(s), keeping original content")

        if task.kind == TaskKind.TEXT:
            content = text_failure_marker(task, attempts, aborted)
        else:
            # A marker inside a table would break the document structure
            content = task.content

        error = TranslationTaskExhaustedError(
            "Translation aborted" if aborted else "All translation attempts failed",
            task_key=task.key,
            attempts=attempts,
            original_error=last_error,
        )
        return TaskResult(
            key=task.key,
            content=content,
            success=False,
            attempts=attempts,
            placeholder=getattr(task, 'placeholder', None),
            error=error,
        )

    @staticmethod
    async def _race(awaitable: Awaitable, abort_event: Optional[asyncio.Event]):
        """Await ``awaitable`` unless the abort signal fires first."""
        if abort_event is None:
            return await awaitable

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(abort_event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()

        if work in done:
            return work.result()

        await asyncio.gather(work, return_exceptions=True)
        # The work may have finished between the signal and the cancel
        if not work.cancelled() and work.exception() is None:
            return work.result()
        raise _Aborted()

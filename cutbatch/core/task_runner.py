"""Bounded concurrent execution of per-cut asset tasks."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Hashable, Iterable, List, Optional

from .cancellation import CancellationToken
from .task import BatchTask, TaskStatus

Executor = Callable[[Hashable], Awaitable[Any]]
ProgressCallback = Callable[[List[BatchTask]], Any]
TaskCallback = Callable[[BatchTask], Any]
PhaseCallback = Callable[[str], Any]
SequenceCallback = Callable[[List[BatchTask], List[BatchTask]], Any]

DEFAULT_MAX_CONCURRENT = 3
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY = 1.0


@dataclass(frozen=True)
class BatchConfig:
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    cancellation: Optional[CancellationToken] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_concurrent", max(1, int(self.max_concurrent)))
        object.__setattr__(self, "max_retries", max(0, int(self.max_retries)))
        object.__setattr__(self, "retry_delay", max(0.0, float(self.retry_delay)))

    def is_cancelled(self) -> bool:
        return self.cancellation is not None and self.cancellation.is_cancelled()


@dataclass(frozen=True)
class BatchCallbacks:
    """Observer hooks. Each may be a plain function or a coroutine function."""

    on_progress: Optional[ProgressCallback] = None
    on_task_complete: Optional[TaskCallback] = None
    on_batch_complete: Optional[ProgressCallback] = None
    on_phase_change: Optional[PhaseCallback] = None
    on_sequence_complete: Optional[SequenceCallback] = None


@dataclass(frozen=True)
class _AttemptOutcome:
    skipped: bool = False
    error: Optional[BaseException] = None


class BoundedTaskRunner:
    """Drive one task per unit through ``executor`` with at most ``max_concurrent`` in flight.

    All task state changes and callbacks happen on the coordinating loop in
    :meth:`run`; attempt coroutines only call the executor and report back.
    """

    def __init__(
        self,
        kind: str,
        executor: Executor,
        config: Optional[BatchConfig] = None,
        callbacks: Optional[BatchCallbacks] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if not callable(executor):
            raise TypeError("executor must be callable")
        self.kind = str(getattr(kind, "value", kind))
        self._executor = executor
        self.config = config or BatchConfig()
        self.callbacks = callbacks or BatchCallbacks()
        self.logger = logger or logging.getLogger(__name__)
        self.tasks: List[BatchTask] = []

    # ------------------------------------------------------------------
    async def run(self, unit_ids: Iterable[Hashable]) -> List[BatchTask]:
        self.tasks = [BatchTask(unit_id=unit_id, kind=self.kind) for unit_id in unit_ids]
        queue: Deque[BatchTask] = deque(self.tasks)
        in_flight: Dict[asyncio.Task, BatchTask] = {}
        self.logger.info(
            "Starting %s batch for %d task(s) (max_concurrent=%d, max_retries=%d).",
            self.kind,
            len(self.tasks),
            self.config.max_concurrent,
            self.config.max_retries,
        )

        try:
            while queue or in_flight:
                if queue and self.config.is_cancelled():
                    while queue:
                        await self._transition(queue.popleft(), TaskStatus.CANCELLED)

                while queue and len(in_flight) < self.config.max_concurrent:
                    task = queue.popleft()
                    await self._transition(task, TaskStatus.RUNNING)
                    in_flight[self._spawn(task, delay=0.0)] = task

                if not in_flight:
                    continue

                done, _ = await asyncio.wait(set(in_flight), return_when=asyncio.FIRST_COMPLETED)
                for future in done:
                    task = in_flight.pop(future)
                    # Only the executor can cancel an attempt while the loop is running.
                    if future.cancelled():
                        outcome = _AttemptOutcome(error=asyncio.CancelledError())
                    else:
                        outcome = future.result()
                    retry = await self._settle(task, outcome)
                    if retry:
                        in_flight[self._spawn(task, delay=self.config.retry_delay)] = task
        finally:
            for future in in_flight:
                future.cancel()
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)

        await notify(self.callbacks.on_progress, self._snapshot())
        self.logger.info("Finished %s batch: %s", self.kind, _summarise(self.tasks))
        await notify(self.callbacks.on_batch_complete, self._snapshot())
        return self.tasks

    # ------------------------------------------------------------------
    def _spawn(self, task: BatchTask, *, delay: float) -> asyncio.Task:
        return asyncio.create_task(
            self._attempt(task.unit_id, delay),
            name=f"{self.kind}-{task.unit_id}-attempt{task.retry_count}",
        )

    # ------------------------------------------------------------------
    async def _attempt(self, unit_id: Hashable, delay: float) -> _AttemptOutcome:
        if delay > 0:
            await asyncio.sleep(delay)
        if self.config.is_cancelled():
            return _AttemptOutcome(skipped=True)
        try:
            await self._executor(unit_id)
        except Exception as exc:
            return _AttemptOutcome(error=exc)
        return _AttemptOutcome()

    # ------------------------------------------------------------------
    async def _settle(self, task: BatchTask, outcome: _AttemptOutcome) -> bool:
        """Apply an attempt outcome to ``task``; return True when it should be retried."""

        if outcome.skipped:
            await self._transition(task, TaskStatus.CANCELLED)
            return False

        if outcome.error is None:
            task.error = None
            await self._transition(task, TaskStatus.SUCCESS)
            await notify(self.callbacks.on_task_complete, task.snapshot())
            return False

        if self.config.is_cancelled():
            self.logger.debug("[%s] %s failed after cancellation: %s", self.kind, task.unit_id, outcome.error)
            await self._transition(task, TaskStatus.CANCELLED)
            return False

        if task.retry_count < self.config.max_retries:
            task.retry_count += 1
            self.logger.warning(
                "[%s] Task %s failed, retrying (%d/%d): %s",
                self.kind,
                task.unit_id,
                task.retry_count,
                self.config.max_retries,
                outcome.error,
                extra=self._log_context(task),
            )
            await notify(self.callbacks.on_progress, self._snapshot())
            return True

        task.error = _error_message(outcome.error)
        self.logger.error(
            "[%s] Task %s failed after %d retries: %s",
            self.kind,
            task.unit_id,
            task.retry_count,
            task.error,
            extra=self._log_context(task),
        )
        await self._transition(task, TaskStatus.ERROR)
        await notify(self.callbacks.on_task_complete, task.snapshot())
        return False

    # ------------------------------------------------------------------
    async def _transition(self, task: BatchTask, status: TaskStatus) -> None:
        self.logger.debug("[%s] %s: %s -> %s", self.kind, task.unit_id, task.status.value, status.value)
        task.status = status
        await notify(self.callbacks.on_progress, self._snapshot())

    # ------------------------------------------------------------------
    def _snapshot(self) -> List[BatchTask]:
        return [task.snapshot() for task in self.tasks]

    def _log_context(self, task: BatchTask) -> Dict[str, Any]:
        return {"kind": self.kind, "unit_id": task.unit_id, "retry_count": task.retry_count}


async def notify(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    """Invoke an observer hook, awaiting it when it returns an awaitable."""

    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


def _error_message(exc: BaseException) -> str:
    message = str(exc).strip()
    if message:
        return message
    return type(exc).__name__ or "Unknown error"


def _summarise(tasks: Iterable[BatchTask]) -> str:
    counts: Dict[str, int] = {}
    for task in tasks:
        counts[task.status.value] = counts.get(task.status.value, 0) + 1
    return ", ".join(f"{status}={count}" for status, count in sorted(counts.items())) or "no tasks"


async def run_batch(
    unit_ids: Iterable[Hashable],
    kind: str,
    executor: Executor,
    config: Optional[BatchConfig] = None,
    callbacks: Optional[BatchCallbacks] = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> List[BatchTask]:
    """Run one task per unit id and return them, terminal, in input order."""

    runner = BoundedTaskRunner(kind, executor, config, callbacks, logger=logger)
    return await runner.run(unit_ids)


__all__ = ["BatchCallbacks", "BatchConfig", "BoundedTaskRunner", "Executor", "notify", "run_batch"]

from __future__ import annotations

import asyncio
from collections import Counter
from typing import Dict, List

import pytest

from cutbatch.core import (
    BatchCallbacks,
    BatchConfig,
    BatchTask,
    BoundedTaskRunner,
    CancellationToken,
    TaskKind,
    TaskStatus,
    run_batch,
)


class StubExecutor:
    """Records calls and concurrency; fails ``failures[unit]`` times before succeeding."""

    def __init__(self, *, failures: Dict[int, int] | None = None, delays: Dict[int, float] | None = None):
        self.failures = dict(failures or {})
        self.delays = dict(delays or {})
        self.calls: Counter = Counter()
        self.active = 0
        self.max_active = 0
        self.completed: List[int] = []

    async def __call__(self, unit_id: int) -> None:
        self.calls[unit_id] += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(unit_id, 0.005))
            remaining = self.failures.get(unit_id, 0)
            if remaining != 0:
                if remaining > 0:
                    self.failures[unit_id] = remaining - 1
                raise RuntimeError(f"generation failed for {unit_id}")
            self.completed.append(unit_id)
        finally:
            self.active -= 1


def _statuses(tasks: List[BatchTask]) -> List[str]:
    return [task.status.value for task in tasks]


def test_retry_then_success_respects_concurrency_bound() -> None:
    executor = StubExecutor(failures={3: 2})
    running_counts: List[int] = []
    config = BatchConfig(max_concurrent=2, max_retries=2, retry_delay=0.01)
    callbacks = BatchCallbacks(
        on_progress=lambda tasks: running_counts.append(
            sum(1 for task in tasks if task.status is TaskStatus.RUNNING)
        )
    )

    tasks = asyncio.run(run_batch([1, 2, 3, 4, 5], TaskKind.IMAGE, executor, config, callbacks))

    assert _statuses(tasks) == ["success"] * 5
    assert tasks[2].retry_count == 2
    assert executor.calls[3] == 3
    assert executor.max_active <= 2
    assert max(running_counts) <= 2


def test_exhausted_retries_end_in_error_and_batch_still_completes() -> None:
    executor = StubExecutor(failures={2: -1})
    completed: List[List[BatchTask]] = []
    finished: List[BatchTask] = []
    config = BatchConfig(max_concurrent=3, max_retries=1, retry_delay=0.0)
    callbacks = BatchCallbacks(on_task_complete=finished.append, on_batch_complete=completed.append)

    tasks = asyncio.run(run_batch([1, 2, 3], "audio", executor, config, callbacks))

    assert _statuses(tasks) == ["success", "error", "success"]
    assert tasks[1].retry_count == 1
    assert tasks[1].error == "generation failed for 2"
    assert executor.calls[2] == 2
    assert len(completed) == 1
    assert _statuses(completed[0]) == ["success", "error", "success"]
    assert sorted(task.unit_id for task in finished) == [1, 2, 3]


def test_retry_count_never_exceeds_max_retries() -> None:
    executor = StubExecutor(failures={1: -1})
    config = BatchConfig(max_concurrent=1, max_retries=3, retry_delay=0.0)
    observed: List[int] = []
    callbacks = BatchCallbacks(on_progress=lambda tasks: observed.append(tasks[0].retry_count))

    tasks = asyncio.run(run_batch([1], "image", executor, config, callbacks))

    assert tasks[0].status is TaskStatus.ERROR
    assert tasks[0].retry_count == 3
    assert executor.calls[1] == 4
    assert max(observed) == 3


def test_zero_retries_fails_on_first_error() -> None:
    executor = StubExecutor(failures={1: 1})

    tasks = asyncio.run(run_batch([1], "image", executor, BatchConfig(max_retries=0, retry_delay=0)))

    assert tasks[0].status is TaskStatus.ERROR
    assert tasks[0].retry_count == 0
    assert executor.calls[1] == 1


def test_result_order_matches_input_order() -> None:
    delays = {1: 0.05, 2: 0.04, 3: 0.03, 4: 0.02, 5: 0.001}
    executor = StubExecutor(delays=delays)

    tasks = asyncio.run(run_batch([1, 2, 3, 4, 5], "image", executor, BatchConfig(max_concurrent=5)))

    assert [task.unit_id for task in tasks] == [1, 2, 3, 4, 5]
    assert executor.completed[0] == 5
    assert all(task.status is TaskStatus.SUCCESS for task in tasks)


def test_duplicate_ids_are_distinct_tasks() -> None:
    executor = StubExecutor()

    tasks = asyncio.run(run_batch([7, 7, 8], "image", executor, BatchConfig(max_concurrent=2)))

    assert len(tasks) == 3
    assert tasks[0] is not tasks[1]
    assert executor.calls[7] == 2


def test_max_concurrent_is_clamped_to_one() -> None:
    executor = StubExecutor()
    config = BatchConfig(max_concurrent=0, max_retries=-4, retry_delay=-1)

    tasks = asyncio.run(run_batch([1, 2, 3], "image", executor, config))

    assert config.max_concurrent == 1
    assert config.max_retries == 0
    assert config.retry_delay == 0.0
    assert executor.max_active == 1
    assert _statuses(tasks) == ["success"] * 3


def test_ceiling_is_fully_utilised() -> None:
    executor = StubExecutor(delays={unit: 0.02 for unit in range(6)})

    asyncio.run(run_batch(range(6), "image", executor, BatchConfig(max_concurrent=3)))

    assert executor.max_active == 3


def test_cancellation_before_start_never_invokes_executor() -> None:
    executor = StubExecutor()
    token = CancellationToken()
    token.cancel()
    completed: List[BatchTask] = []

    tasks = asyncio.run(
        run_batch(
            [1, 2, 3],
            "image",
            executor,
            BatchConfig(cancellation=token),
            BatchCallbacks(on_task_complete=completed.append),
        )
    )

    assert _statuses(tasks) == ["cancelled"] * 3
    assert not executor.calls
    assert completed == []


def test_cancellation_mid_batch() -> None:
    # Unit 2 is in flight when unit 1 completes and then fails.
    executor = StubExecutor(failures={2: -1}, delays={1: 0.005, 2: 0.05})
    token = CancellationToken()

    def cancel_after_first(task: BatchTask) -> None:
        if task.status is TaskStatus.SUCCESS:
            token.cancel()

    config = BatchConfig(max_concurrent=2, max_retries=2, retry_delay=0.0, cancellation=token)
    tasks = asyncio.run(
        run_batch([1, 2, 3, 4], "image", executor, config, BatchCallbacks(on_task_complete=cancel_after_first))
    )

    assert _statuses(tasks) == ["success", "cancelled", "cancelled", "cancelled"]
    assert tasks[1].error is None
    assert executor.calls[2] == 1
    assert 3 not in executor.calls and 4 not in executor.calls


def test_cancellation_during_retry_delay_skips_next_attempt() -> None:
    executor = StubExecutor(failures={1: -1})
    token = CancellationToken()

    def cancel_on_retry(tasks: List[BatchTask]) -> None:
        if tasks[0].retry_count == 1:
            token.cancel()

    config = BatchConfig(max_concurrent=1, max_retries=3, retry_delay=0.01, cancellation=token)
    tasks = asyncio.run(run_batch([1], "image", executor, config, BatchCallbacks(on_progress=cancel_on_retry)))

    assert tasks[0].status is TaskStatus.CANCELLED
    assert executor.calls[1] == 1


def test_progress_snapshots_are_monotonic_per_task() -> None:
    executor = StubExecutor(failures={2: 1})
    history: Dict[int, List[str]] = {}

    def record(tasks: List[BatchTask]) -> None:
        for task in tasks:
            states = history.setdefault(task.unit_id, [])
            if not states or states[-1] != task.status.value:
                states.append(task.status.value)

    config = BatchConfig(max_concurrent=2, retry_delay=0.0)
    asyncio.run(run_batch([1, 2, 3], "image", executor, config, BatchCallbacks(on_progress=record)))

    order = ["pending", "running", "success"]
    for states in history.values():
        assert states == order[order.index(states[0]):]
    assert history[2] == order


def test_async_callbacks_are_awaited() -> None:
    executor = StubExecutor()
    seen: List[str] = []

    async def on_batch_complete(tasks: List[BatchTask]) -> None:
        await asyncio.sleep(0)
        seen.append("done")

    asyncio.run(run_batch([1], "image", executor, callbacks=BatchCallbacks(on_batch_complete=on_batch_complete)))

    assert seen == ["done"]


def test_empty_batch_still_reports_completion() -> None:
    completed: List[List[BatchTask]] = []

    tasks = asyncio.run(
        run_batch([], "image", StubExecutor(), callbacks=BatchCallbacks(on_batch_complete=completed.append))
    )

    assert tasks == []
    assert completed == [[]]


def test_non_callable_executor_is_rejected() -> None:
    with pytest.raises(TypeError):
        BoundedTaskRunner("image", None)  # type: ignore[arg-type]


def test_error_message_falls_back_to_exception_name() -> None:
    async def executor(unit_id: int) -> None:
        raise ValueError()

    tasks = asyncio.run(run_batch([1], "image", executor, BatchConfig(max_retries=0)))

    assert tasks[0].error == "ValueError"


def test_executor_raising_cancelled_error_is_a_task_failure() -> None:
    calls: Counter = Counter()

    async def executor(unit_id: int) -> None:
        calls[unit_id] += 1
        await asyncio.sleep(0.001)
        if unit_id == 2:
            raise asyncio.CancelledError()

    tasks = asyncio.run(run_batch([1, 2, 3], "image", executor, BatchConfig(max_concurrent=3, max_retries=1, retry_delay=0)))

    assert _statuses(tasks) == ["success", "error", "success"]
    assert tasks[1].retry_count == 1
    assert tasks[1].error == "CancelledError"
    assert calls[2] == 2

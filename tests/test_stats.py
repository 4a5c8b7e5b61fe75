from __future__ import annotations

from cutbatch.core import BatchTask, TaskStatus, batch_stats


def _task(unit_id: int, status: TaskStatus) -> BatchTask:
    return BatchTask(unit_id=unit_id, kind="image", status=status)


def test_batch_stats_counts_statuses_and_progress() -> None:
    tasks = [
        _task(1, TaskStatus.SUCCESS),
        _task(2, TaskStatus.ERROR),
        _task(3, TaskStatus.RUNNING),
        _task(4, TaskStatus.PENDING),
        _task(5, TaskStatus.CANCELLED),
        _task(6, TaskStatus.SUCCESS),
    ]

    stats = batch_stats(tasks)

    assert stats.total == 6
    assert (stats.pending, stats.running, stats.success, stats.error, stats.cancelled) == (1, 1, 2, 1, 1)
    assert stats.finished == 4
    assert stats.progress == 67


def test_batch_stats_empty_list() -> None:
    stats = batch_stats([])

    assert stats.as_dict() == {
        "total": 0,
        "pending": 0,
        "running": 0,
        "success": 0,
        "error": 0,
        "cancelled": 0,
        "progress": 0,
    }


def test_progress_rounds_half_up() -> None:
    tasks = [_task(1, TaskStatus.SUCCESS)] + [_task(i, TaskStatus.PENDING) for i in range(2, 9)]

    assert batch_stats(tasks).progress == 13

"""Aggregate counters over a batch task list."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Iterable

from .task import BatchTask, TaskStatus


@dataclass(frozen=True)
class BatchStats:
    total: int = 0
    pending: int = 0
    running: int = 0
    success: int = 0
    error: int = 0
    cancelled: int = 0
    progress: int = 0

    @property
    def finished(self) -> int:
        return self.success + self.error + self.cancelled

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def batch_stats(tasks: Iterable[BatchTask]) -> BatchStats:
    """Count tasks per status; ``progress`` is the rounded percentage of terminal tasks."""

    counts = {status: 0 for status in TaskStatus}
    total = 0
    for task in tasks:
        counts[task.status] += 1
        total += 1
    finished = counts[TaskStatus.SUCCESS] + counts[TaskStatus.ERROR] + counts[TaskStatus.CANCELLED]
    progress = int(finished * 100 / total + 0.5) if total else 0
    return BatchStats(
        total=total,
        pending=counts[TaskStatus.PENDING],
        running=counts[TaskStatus.RUNNING],
        success=counts[TaskStatus.SUCCESS],
        error=counts[TaskStatus.ERROR],
        cancelled=counts[TaskStatus.CANCELLED],
        progress=progress,
    )


__all__ = ["BatchStats", "batch_stats"]

"""Batch asset generation for episode cuts."""

from .core import (
    BatchCallbacks,
    BatchConfig,
    BatchStats,
    BatchTask,
    BoundedTaskRunner,
    CancellationToken,
    PhaseSequencer,
    SequentialResult,
    TaskKind,
    TaskStatus,
    batch_stats,
    run_batch,
    run_sequential,
)

__version__ = "0.1.0"

__all__ = [
    "BatchCallbacks",
    "BatchConfig",
    "BatchStats",
    "BatchTask",
    "BoundedTaskRunner",
    "CancellationToken",
    "PhaseSequencer",
    "SequentialResult",
    "TaskKind",
    "TaskStatus",
    "batch_stats",
    "run_batch",
    "run_sequential",
]

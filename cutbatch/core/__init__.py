"""Core scheduling components for batch asset generation."""

from .cancellation import CancellationToken
from .phase_sequencer import PhaseSequencer, SequentialResult, run_sequential
from .stats import BatchStats, batch_stats
from .task import BatchTask, TaskKind, TaskStatus
from .task_runner import BatchCallbacks, BatchConfig, BoundedTaskRunner, run_batch

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

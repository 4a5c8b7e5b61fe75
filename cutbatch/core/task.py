"""
Task record for one asset of one cut.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Hashable, Optional


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({TaskStatus.SUCCESS, TaskStatus.ERROR, TaskStatus.CANCELLED})


class TaskKind(str, Enum):
    IMAGE = "image"
    AUDIO = "audio"


@dataclass
class BatchTask:
    """Represents one unit × kind attempt record within a single batch."""

    unit_id: Hashable
    kind: str
    status: TaskStatus = TaskStatus.PENDING
    retry_count: int = 0
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def snapshot(self) -> "BatchTask":
        return replace(self)

    def as_dict(self) -> dict:
        payload = {
            "unit_id": self.unit_id,
            "kind": self.kind,
            "status": self.status.value,
            "retry_count": self.retry_count,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload


__all__ = ["BatchTask", "TaskKind", "TaskStatus"]

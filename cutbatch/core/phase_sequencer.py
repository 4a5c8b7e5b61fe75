"""Two-phase sequential batch generation (images first, then audio)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Hashable, Iterable, List, Optional

from .task import BatchTask, TaskKind
from .task_runner import BatchCallbacks, BatchConfig, BoundedTaskRunner, Executor, notify


@dataclass
class SequentialResult:
    image_tasks: List[BatchTask] = field(default_factory=list)
    audio_tasks: List[BatchTask] = field(default_factory=list)

    @property
    def all_tasks(self) -> List[BatchTask]:
        return [*self.image_tasks, *self.audio_tasks]


class PhaseSequencer:
    """Run the image phase to completion, then the audio phase over the same units.

    A failed image task does not prevent its cut's audio task. The audio phase
    is skipped, and reported empty, when cancellation was requested before it
    starts or when there are no units.
    """

    def __init__(
        self,
        image_executor: Executor,
        audio_executor: Executor,
        config: Optional[BatchConfig] = None,
        callbacks: Optional[BatchCallbacks] = None,
        *,
        first_kind: str = TaskKind.IMAGE.value,
        second_kind: str = TaskKind.AUDIO.value,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if not callable(image_executor) or not callable(audio_executor):
            raise TypeError("phase executors must be callable")
        self.image_executor = image_executor
        self.audio_executor = audio_executor
        self.config = config or BatchConfig()
        self.callbacks = callbacks or BatchCallbacks()
        self.first_kind = first_kind
        self.second_kind = second_kind
        self.logger = logger or logging.getLogger(__name__)
        self.active_phase: Optional[str] = None

    # ------------------------------------------------------------------
    async def run(self, unit_ids: Iterable[Hashable]) -> SequentialResult:
        units = list(unit_ids)
        # Per-phase completion is folded into the single sequence callback.
        phase_callbacks = replace(self.callbacks, on_batch_complete=None)
        result = SequentialResult()

        result.image_tasks = await self._run_phase(self.first_kind, self.image_executor, units, phase_callbacks)

        if units and not self.config.is_cancelled():
            result.audio_tasks = await self._run_phase(
                self.second_kind, self.audio_executor, units, phase_callbacks
            )
        else:
            self.logger.info(
                "Skipping %s phase (%s).",
                self.second_kind,
                "cancelled" if self.config.is_cancelled() else "no units",
            )

        self.active_phase = None
        await notify(
            self.callbacks.on_sequence_complete,
            [task.snapshot() for task in result.image_tasks],
            [task.snapshot() for task in result.audio_tasks],
        )
        return result

    # ------------------------------------------------------------------
    async def _run_phase(
        self,
        kind: str,
        executor: Executor,
        units: List[Hashable],
        callbacks: BatchCallbacks,
    ) -> List[BatchTask]:
        self.active_phase = kind
        self.logger.info("Phase %s starting for %d unit(s).", kind, len(units))
        await notify(self.callbacks.on_phase_change, kind)
        runner = BoundedTaskRunner(kind, executor, self.config, callbacks, logger=self.logger)
        return await runner.run(units)


async def run_sequential(
    unit_ids: Iterable[Hashable],
    image_executor: Executor,
    audio_executor: Executor,
    config: Optional[BatchConfig] = None,
    callbacks: Optional[BatchCallbacks] = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> SequentialResult:
    sequencer = PhaseSequencer(image_executor, audio_executor, config, callbacks, logger=logger)
    return await sequencer.run(unit_ids)


__all__ = ["PhaseSequencer", "SequentialResult", "run_sequential"]

"""Runtime orchestration for a batch generation run."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .config import batch_config_from_mapping, load_config
from .core import (
    BatchCallbacks,
    BatchTask,
    CancellationToken,
    PhaseSequencer,
    SequentialResult,
    TaskStatus,
    batch_stats,
    run_batch,
)
from .core.task_runner import Executor
from .logging_utils import configure_logging
from .producers import build_producers
from .units import load_units


class BatchRuntime:
    def __init__(
        self,
        config: Dict[str, Any],
        logger: logging.Logger,
        *,
        executors: Optional[Mapping[str, Executor]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        self.config = config
        self.logger = logger
        self.executors = dict(executors) if executors is not None else None
        self.cancellation = cancellation or CancellationToken()
        self._last_progress = -1

    @classmethod
    def from_defaults(cls, config_path: str | None = None, *, log_level: str | None = None) -> "BatchRuntime":
        result = load_config(config_path, include_sources=True)
        logging_config = dict(result.config.get("logging", {}))
        logging_config.setdefault("log_dir", result.config.get("paths", {}).get("logs"))
        logger = configure_logging(logging_config, console_level=log_level)
        sources = ", ".join(result.sources) or "<defaults>"
        logger.info("Loaded configuration from: %s", sources)
        return cls(result.config, logger)

    async def run(self) -> bool:
        """Run the configured batch; True when every task succeeded."""

        paths = self.config.get("paths", {})
        try:
            units = load_units(paths.get("units"))
        except FileNotFoundError as exc:
            self.logger.error("Units file missing: %s", exc)
            return False
        except ValueError as exc:
            self.logger.error("Invalid units file: %s", exc)
            return False
        if not units:
            self.logger.warning("No units to process.")
            return False

        mode = str(self.config.get("batch", {}).get("mode", "sequential"))
        batch_config = batch_config_from_mapping(self.config, self.cancellation)
        owned = self.executors is None
        executors = build_producers(self.config, logger=self.logger) if owned else self.executors
        required = ("image", "audio") if mode == "sequential" else (mode,)
        missing = [kind for kind in required if kind not in executors]
        if missing:
            self.logger.error("No producer configured for: %s", ", ".join(missing))
            await self._close(executors, owned)
            return False

        callbacks = BatchCallbacks(
            on_progress=self._on_progress,
            on_task_complete=self._on_task_complete,
            on_phase_change=self._on_phase_change,
        )

        self.cancellation.install()
        started = time.perf_counter()
        try:
            if mode == "sequential":
                sequencer = PhaseSequencer(
                    executors["image"],
                    executors["audio"],
                    batch_config,
                    callbacks,
                    logger=self.logger,
                )
                result = await sequencer.run(units)
            else:
                tasks = await run_batch(units, mode, executors[mode], batch_config, callbacks, logger=self.logger)
                result = SequentialResult(**{f"{mode}_tasks": tasks})
        finally:
            self.cancellation.uninstall()
            await self._close(executors, owned)
        elapsed = time.perf_counter() - started

        summary = self._summary(result, mode=mode, elapsed=elapsed)
        self._write_summary(paths.get("summaries"), summary)
        for phase, stats in summary["phases"].items():
            self.logger.info(
                "%s: %d/%d succeeded, %d failed, %d cancelled.",
                phase,
                stats["success"],
                stats["total"],
                stats["error"],
                stats["cancelled"],
            )
        return all(task.status is TaskStatus.SUCCESS for task in result.all_tasks)

    # ------------------------------------------------------------------
    def _on_progress(self, tasks: List[BatchTask]) -> None:
        stats = batch_stats(tasks)
        if stats.progress != self._last_progress:
            self._last_progress = stats.progress
            self.logger.info(
                "Progress %d%% (%d running, %d done of %d).",
                stats.progress,
                stats.running,
                stats.finished,
                stats.total,
            )

    def _on_task_complete(self, task: BatchTask) -> None:
        if task.status is TaskStatus.SUCCESS:
            self.logger.debug("%s asset ready for unit %s.", task.kind, task.unit_id)

    def _on_phase_change(self, phase: str) -> None:
        self._last_progress = -1
        self.logger.info("Generating %s assets.", phase)

    # ------------------------------------------------------------------
    def _summary(self, result: SequentialResult, *, mode: str, elapsed: float) -> Dict[str, Any]:
        phases = {}
        failures = []
        for phase, tasks in (("image", result.image_tasks), ("audio", result.audio_tasks)):
            if mode != "sequential" and phase != mode:
                continue
            phases[phase] = batch_stats(tasks).as_dict()
            failures.extend(task.as_dict() for task in tasks if task.status is TaskStatus.ERROR)
        return {
            "mode": mode,
            "cancelled": self.cancellation.is_cancelled(),
            "elapsed_seconds": round(elapsed, 3),
            "phases": phases,
            "failures": failures,
        }

    def _write_summary(self, directory: str | None, summary: Dict[str, Any]) -> None:
        if not directory:
            return
        target_dir = Path(directory)
        target_dir.mkdir(parents=True, exist_ok=True)
        timestamp = time.strftime("%Y%m%dT%H%M%S", time.gmtime())
        summary_path = target_dir / f"run-summary-{timestamp}.json"
        summary_path.write_text(
            json.dumps(summary, indent=2, ensure_ascii=False, default=str) + "\n",
            encoding="utf-8",
        )
        self.logger.info("Run summary written to %s", summary_path)

    @staticmethod
    async def _close(executors: Mapping[str, Any], owned: bool) -> None:
        if not owned:
            return
        for producer in executors.values():
            await producer.aclose()


__all__ = ["BatchRuntime"]

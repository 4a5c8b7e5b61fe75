"""Cooperative, signal-aware cancellation token."""

from __future__ import annotations

import asyncio
import signal
from typing import Iterable


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._installed = False

    def install(self, signals: Iterable[int] | None = None) -> None:
        """Bind process signals (SIGINT/SIGTERM by default) to :meth:`cancel`."""

        loop = asyncio.get_running_loop()
        if self._installed:
            return
        self._installed = True
        targets = list(signals) if signals is not None else [signal.SIGINT, signal.SIGTERM]
        for sig in targets:
            try:
                loop.add_signal_handler(sig, self.cancel)
            except NotImplementedError:  # pragma: no cover - windows fallback
                signal.signal(sig, lambda *_: self.cancel())

    def uninstall(self, signals: Iterable[int] | None = None) -> None:
        if not self._installed:
            return
        loop = asyncio.get_running_loop()
        targets = list(signals) if signals is not None else [signal.SIGINT, signal.SIGTERM]
        for sig in targets:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:  # pragma: no cover - windows fallback
                signal.signal(sig, signal.SIG_DFL)
        self._installed = False

    def cancel(self) -> None:
        if not self._event.is_set():
            self._event.set()

    @property
    def event(self) -> asyncio.Event:
        return self._event

    def is_cancelled(self) -> bool:
        return self._event.is_set()


__all__ = ["CancellationToken"]

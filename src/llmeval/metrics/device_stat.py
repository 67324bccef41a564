"""Periodic device memory sampling for the toolbar."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from ..engines.base import MemorySnapshot

logger = logging.getLogger(__name__)

_UNITS = ("KB", "MB", "GB", "TB")


def format_bytes(count: int) -> str:
    if count < 1024:
        return f"{count} bytes"
    value = float(count)
    unit = _UNITS[0]
    for unit in _UNITS:
        value /= 1024
        if value < 1024:
            break
    return f"{value:.1f} {unit}"


class DeviceStat:
    def __init__(self, snapshot: Callable[[], MemorySnapshot], interval_ms: int) -> None:
        self._snapshot = snapshot
        self._interval = interval_ms / 1000.0
        self._running = threading.Event()
        self._thread: threading.Thread | None = None
        self.gpu_usage = MemorySnapshot()

    def start(self) -> None:
        self.sample()
        self._running.set()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._running.clear()
        if self._thread:
            self._thread.join(timeout=1.0)

    def sample(self) -> MemorySnapshot:
        self.gpu_usage = self._snapshot()
        return self.gpu_usage

    def _run(self) -> None:
        while self._running.is_set():
            time.sleep(self._interval)
            try:
                self.sample()
            except Exception:  # noqa: BLE001
                logger.warning("Memory sampling failed", exc_info=True)

    def label(self) -> str:
        return f"Memory Usage: {format_bytes(self.gpu_usage.active_memory)}"

    def details(self) -> str:
        usage = self.gpu_usage
        return (
            f"Active Memory: {format_bytes(usage.active_memory)}/{format_bytes(usage.memory_limit)}\n"
            f"Cache Memory: {format_bytes(usage.cache_memory)}/{format_bytes(usage.cache_limit)}\n"
            f"Peak Memory: {format_bytes(usage.peak_memory)}"
        )

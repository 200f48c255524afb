"""Aggregate counters shared by the services' ``get_stats`` surfaces."""

from __future__ import annotations

import threading


class RunningMean:
    """Incremental mean: m_n = m_{n-1} + (x - m_{n-1}) / n. Never stores the sum."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.count = 0
        self.mean = 0.0

    def add(self, value: float) -> None:
        with self._lock:
            self.count += 1
            self.mean += (value - self.mean) / self.count

    def reset(self) -> None:
        with self._lock:
            self.count = 0
            self.mean = 0.0


class Counters:
    """Named integer/float counters behind one mutex."""

    def __init__(self, *names: str) -> None:
        self._lock = threading.Lock()
        self._names = names
        self._values: dict[str, float] = dict.fromkeys(names, 0)

    def incr(self, name: str, amount: float = 1) -> None:
        with self._lock:
            self._values[name] = self._values.get(name, 0) + amount

    def __getitem__(self, name: str) -> float:
        return self._values.get(name, 0)

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            return dict(self._values)

    def reset(self) -> None:
        with self._lock:
            self._values = dict.fromkeys(self._names, 0)

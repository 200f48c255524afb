from typing import Protocol, runtime_checkable


@runtime_checkable
class TelemetryPort(Protocol):
    """Port for metrics (counters, histograms). Optional dependency of the orchestrator."""

    def incr(self, name: str, tags: dict[str, str]) -> None: ...

    def observe(self, name: str, value: float, tags: dict[str, str]) -> None: ...

    def is_available(self) -> bool: ...

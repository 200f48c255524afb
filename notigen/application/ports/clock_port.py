from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime


class ClockPort(ABC):
    """Port for wall-clock time; timestamps on turns and cache entries come from here."""

    @abstractmethod
    def now(self) -> datetime:
        """Return current UTC datetime."""
        ...

    def now_iso(self) -> str:
        return self.now().isoformat()

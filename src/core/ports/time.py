"""
Clock interface.

All timestamps handled by the core are timezone-aware UTC.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class ClockPort(Protocol):
    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...

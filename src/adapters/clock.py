from datetime import UTC, datetime


class SystemClock:
    """Wall clock in UTC. Implements ClockPort."""

    def now_utc(self) -> datetime:
        return datetime.now(UTC)

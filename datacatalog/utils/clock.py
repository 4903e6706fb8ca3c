from datetime import datetime, timezone


class SystemClock:
    """Clock collaborator returning the current UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock that always returns the same instant; used for deterministic timestamps."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

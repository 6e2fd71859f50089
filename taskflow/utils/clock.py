"""Time helpers shared by the timer engine and task services."""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, rounded half-up, never negative.

    30 seconds rounds to 1 minute, 29.999 seconds to 0.
    """
    seconds = Decimal(str((end - start).total_seconds()))
    if seconds <= 0:
        return 0
    return int((seconds / Decimal(60)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

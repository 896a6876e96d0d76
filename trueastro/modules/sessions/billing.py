"""Per-minute billing for completed consultations."""
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
import math

MS_PER_MINUTE = 60_000
CENTS = Decimal("0.01")
_ONE_MS = timedelta(milliseconds=1)


def to_money(value) -> Decimal:
    """Quantize to 2 decimal places, half-up. Floats go through str() first."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def billable_minutes(elapsed_ms: int) -> int:
    """
    Partial minutes bill as a full minute, and a session that started
    always bills at least one minute.

    >>> billable_minutes(1), billable_minutes(60_000), billable_minutes(60_001)
    (1, 1, 2)
    """
    if elapsed_ms < 0:
        raise ValueError("elapsed time cannot be negative")
    return max(1, math.ceil(elapsed_ms / MS_PER_MINUTE))


def elapsed_ms(start_time: datetime, end_time: datetime) -> int:
    # a leftover fraction of a millisecond still counts
    return math.ceil((end_time - start_time) / _ONE_MS)


def total_amount(duration_minutes: int, rate_per_minute) -> Decimal:
    if not isinstance(rate_per_minute, Decimal):
        rate_per_minute = Decimal(str(rate_per_minute))
    return to_money(Decimal(duration_minutes) * rate_per_minute)


def bill(start_time: datetime, end_time: datetime, rate_per_minute):
    """Returns (duration_minutes, total_amount) for a session ended at end_time."""
    minutes = billable_minutes(elapsed_ms(start_time, end_time))
    return minutes, total_amount(minutes, rate_per_minute)

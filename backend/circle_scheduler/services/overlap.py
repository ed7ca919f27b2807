"""Time-range intersection shared by every conflict check."""
from datetime import datetime


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Return True when [start_a, end_a) and [start_b, end_b) intersect.

    Ranges are half-open: one range ending exactly when the other begins
    does not overlap.
    """
    return start_a < end_b and start_b < end_a

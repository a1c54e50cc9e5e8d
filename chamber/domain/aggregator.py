from __future__ import annotations
from datetime import datetime
from typing import Iterable, Optional, Sequence

from .models import CHANNELS, ChannelStats, SensorReading, WindowStats


def compute_stats(values: Sequence[float]) -> Optional[ChannelStats]:
    """Summary of ``values``, which must be in chronological order.

    Median is ``sorted(values)[n // 2]``: for even ``n`` this is the upper of
    the two middle elements, never their mean. ``latest`` is the last value
    in input order.
    """
    if not values:
        return None
    ordered = sorted(values)
    return ChannelStats(
        min=ordered[0],
        max=ordered[-1],
        average=sum(values) / len(values),
        median=ordered[len(ordered) // 2],
        latest=values[-1],
    )


def window_stats(
    readings: Iterable[SensorReading],
    start: datetime,
    end: datetime,
) -> Optional[WindowStats]:
    in_window = [r for r in readings if start <= r.ts_utc <= end]
    if not in_window:
        return None
    # Input is newest first (as the store returns it); reverse before the
    # stable sort so equal timestamps stay in append order
    in_window.reverse()
    in_window.sort(key=lambda r: r.ts_utc)
    channels = {
        ch: compute_stats([r.readings[ch] for r in in_window if ch in r.readings])
        for ch in CHANNELS
    }
    return WindowStats(
        period_start=start,
        period_end=end,
        total_readings=len(in_window),
        channels=channels,
    )

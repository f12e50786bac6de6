from __future__ import annotations

from typing import Dict, List, Sequence

import pandas as pd

from marketdash.models import Point

TIME_RANGES: Dict[str, pd.DateOffset] = {
    "1M": pd.DateOffset(months=1),
    "6M": pd.DateOffset(months=6),
    "1Y": pd.DateOffset(years=1),
    "5Y": pd.DateOffset(years=5),
}


def filter_by_time_range(points: Sequence[Point], time_range: str) -> List[Point]:
    """Keep points within `time_range` of the most recent observation (not of today)."""
    if not points:
        return []
    if time_range == "MAX":
        return list(points)
    if time_range not in TIME_RANGES:
        raise ValueError(f"Unknown time range {time_range!r}; expected one of {sorted(TIME_RANGES) + ['MAX']}")

    stamps = pd.to_datetime([d for d, _ in points], format="ISO8601", errors="coerce")
    cutoff = stamps.max() - TIME_RANGES[time_range]
    return [p for p, ts in zip(points, stamps) if not pd.isna(ts) and ts >= cutoff]

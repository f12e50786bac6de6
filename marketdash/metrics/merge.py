from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from marketdash.models import MergedRegionStats, Point, RegionSeries

logger = logging.getLogger(__name__)


def latest_change(points: Sequence[Point]) -> Tuple[float, float]:
    """Return (last value, percent change from the point before it)."""
    current = points[-1][1]
    if len(points) < 2:
        return current, 0.0
    previous = points[-2][1]
    if previous == 0:
        return current, 0.0
    return current, (current - previous) / previous * 100


def summarize(series: RegionSeries, rental_points: Optional[List[Point]] = None) -> MergedRegionStats:
    current, change = latest_change(series.points)
    values = [v for _, v in series.points]
    stats = MergedRegionStats(
        region_id=series.region_id,
        city=series.city,
        state=series.state,
        zip_code=series.zip_code,
        points=list(series.points),
        current_value=current,
        percent_change=change,
        min_value=min(values),
        max_value=max(values),
    )
    if rental_points:
        stats.rental_points = list(rental_points)
        stats.current_rent, stats.rent_change = latest_change(rental_points)
    return stats


def merge_rentals(
    values: Sequence[RegionSeries],
    rentals: Optional[Sequence[RegionSeries]] = None,
) -> List[MergedRegionStats]:
    rental_by_id: Dict[str, RegionSeries] = {r.region_id: r for r in rentals or []}
    merged = [summarize(s, rental_by_id[s.region_id].points if s.region_id in rental_by_id else None) for s in values]
    if rental_by_id:
        matched = sum(1 for m in merged if m.rental_points)
        logger.info("Merged rentals for %s of %s regions (%s rental rows)", matched, len(merged), len(rental_by_id))
    return merged

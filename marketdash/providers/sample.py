from __future__ import annotations

from typing import List, Optional

from marketdash.geo.index import MarketIndex
from marketdash.metrics.merge import summarize
from marketdash.models import MergedRegionStats, RegionSeries
from .base import LoadState, SourceKind

# region id, city, state, zip, first monthly value, monthly growth, first rent
SAMPLE_MARKETS = [
    ("394913", "New York", "NY", "10001", 640000.0, 0.004, 3100.0),
    ("753899", "Los Angeles", "CA", "90012", 905000.0, 0.003, 2800.0),
    ("394463", "Chicago", "IL", "60601", 290000.0, 0.005, 1900.0),
    ("394514", "Detroit", "MI", "48201", 74000.0, 0.006, 1250.0),
    ("394692", "Houston", "TX", "77002", 265000.0, 0.002, 1600.0),
    ("394355", "Austin", "TX", "78701", 540000.0, -0.003, 1750.0),
]

SAMPLE_MONTHS = [f"2024-{m:02d}" for m in range(1, 13)]


def _sample_series() -> List[MergedRegionStats]:
    out: List[MergedRegionStats] = []
    for region_id, city, state, zip_code, start, growth, rent in SAMPLE_MARKETS:
        points = [(d, round(start * (1 + growth) ** i, 2)) for i, d in enumerate(SAMPLE_MONTHS)]
        rentals = [(d, round(rent * (1 + growth / 2) ** i, 2)) for i, d in enumerate(SAMPLE_MONTHS)]
        series = RegionSeries(region_id=region_id, city=city, state=state, zip_code=zip_code, points=points)
        out.append(summarize(series, rentals))
    return out


class SampleProvider:
    """Small fixed dataset served when no real source is usable."""

    kind = SourceKind.SAMPLE
    state = LoadState.READY

    def __init__(self):
        self._index = MarketIndex.build(_sample_series())

    async def await_ready(self) -> None:
        return None

    def all_records(self) -> List[MergedRegionStats]:
        return self._index.all_records()

    async def get_stats(self, query: str) -> Optional[MergedRegionStats]:
        return self._index.lookup(query)

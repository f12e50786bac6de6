from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from marketdash.errors import ValidationFailed
from marketdash.geo.keys import slugify
from marketdash.io.http import fetch_json
from marketdash.models import MergedRegionStats, RegionDescriptor
from marketdash.providers.base import BulkCapable, MarketProvider

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
DEFAULT_LIMIT = 100


@dataclass(frozen=True)
class SearchResult:
    results: List[RegionDescriptor]
    total: int


def descriptor_for(record: MergedRegionStats) -> RegionDescriptor:
    return RegionDescriptor(
        id=record.region_id,
        name=record.canonical_name,
        city=record.city,
        state=record.state,
        zip_code=record.zip_code,
        market_key=slugify(record.canonical_name),
    )


def _matches(region: RegionDescriptor, query: str) -> bool:
    lowered = query.lower()
    return (
        lowered in region.city.lower()
        or lowered in region.state.lower()
        or lowered in region.name.lower()
        or (region.zip_code is not None and query in region.zip_code)
    )


class RegionDirectory:
    def __init__(self, regions: List[RegionDescriptor]):
        self.regions = list(regions)

    @classmethod
    async def load(cls, url: str, client: Optional[httpx.AsyncClient] = None) -> "RegionDirectory":
        data = await fetch_json(url, client=client)
        if not isinstance(data, list):
            raise ValidationFailed(f"Region directory at {url} is not a JSON array")
        directory = cls([RegionDescriptor.from_dict(item) for item in data])
        logger.info("Loaded region directory with %s markets", len(directory.regions))
        return directory

    def search(self, query: str, limit: int = DEFAULT_LIMIT) -> SearchResult:
        query = query.strip()
        if len(query) < MIN_QUERY_LENGTH:
            return SearchResult([], 0)
        matches = [r for r in self.regions if _matches(r, query)]
        return SearchResult(matches[:limit], len(matches))


async def search_markets(
    provider: MarketProvider,
    query: str,
    directory: Optional[RegionDirectory] = None,
    limit: int = DEFAULT_LIMIT,
    client: Optional[httpx.AsyncClient] = None,
) -> SearchResult:
    """Resolve free text to candidate regions before a get_stats call."""
    if len(query.strip()) < MIN_QUERY_LENGTH:
        return SearchResult([], 0)
    if isinstance(provider, BulkCapable):
        await provider.await_ready()
        directory = RegionDirectory([descriptor_for(r) for r in provider.all_records()])
    elif directory is None:
        url = getattr(provider, "directory_url", None)
        if not url:
            logger.warning("No region directory configured for %s provider", provider.kind.value)
            return SearchResult([], 0)
        directory = await RegionDirectory.load(url, client=client)
    result = directory.search(query, limit)
    logger.debug("Search %r matched %s markets", query, result.total)
    return result

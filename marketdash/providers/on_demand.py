from __future__ import annotations

import asyncio
import logging
from typing import Optional, Tuple

import httpx

from marketdash.datasets.zillow_wide.parse import parse_single_region
from marketdash.errors import DownloadFailed, SourceUnreachable
from marketdash.geo.keys import slugify
from marketdash.io.http import build_async_client, fetch_text
from marketdash.metrics.merge import summarize
from marketdash.models import MergedRegionStats
from .base import LoadState, ProviderConfig, SourceKind

logger = logging.getLogger(__name__)


class OnDemandProvider:
    """Fetches the two small per-region files for each request; nothing is preloaded or cached."""

    kind = SourceKind.ON_DEMAND
    state = LoadState.READY

    def __init__(self, config: ProviderConfig, client: Optional[httpx.AsyncClient] = None):
        if not config.base_url:
            raise ValueError("On-demand mode needs a base_url for per-region files")
        self.config = config
        self._client = client

    @property
    def directory_url(self) -> Optional[str]:
        return self.config.directory_url

    def market_urls(self, slug: str) -> Tuple[str, str]:
        base = self.config.base_url.rstrip("/")
        return f"{base}/zhvi/{slug}.csv", f"{base}/zori/{slug}.csv"

    async def get_stats(self, query: str) -> Optional[MergedRegionStats]:
        slug = slugify(query)
        if not slug:
            return None
        value_url, rental_url = self.market_urls(slug)

        owns_client = self._client is None
        client = self._client or build_async_client(timeout=30.0)
        try:
            value_res, rental_res = await asyncio.gather(
                fetch_text(value_url, client=client),
                fetch_text(rental_url, client=client),
                return_exceptions=True,
            )
        finally:
            if owns_client:
                await client.aclose()

        if isinstance(value_res, SourceUnreachable):
            logger.error("Market data source unreachable for %s: %s", query, value_res)
            raise value_res
        if isinstance(value_res, DownloadFailed):
            logger.info("No home value file for %s (%s)", query, value_res)
            return None
        if isinstance(value_res, BaseException):
            raise value_res

        series = parse_single_region(value_res)
        if series is None:
            logger.info("Home value file for %s holds no usable series", query)
            return None

        rental_points = None
        if isinstance(rental_res, str):
            rental = parse_single_region(rental_res)
            rental_points = rental.points if rental is not None else None
        elif isinstance(rental_res, DownloadFailed):
            logger.debug("No rental file for %s (%s)", query, rental_res)
        elif isinstance(rental_res, BaseException):
            raise rental_res

        logger.info(
            "Loaded %s from per-region files (%s prices, %s rentals)",
            slug,
            len(series.points),
            len(rental_points or []),
        )
        return summarize(series, rental_points)

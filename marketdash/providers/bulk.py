from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from marketdash.datasets.zillow_wide.parse import parse_wide_csv
from marketdash.errors import CacheWriteFailed, DownloadFailed, LoadFailed, ParseFailed, ValidationFailed
from marketdash.geo.index import MarketIndex
from marketdash.io.cache import DurableCache, Ttl
from marketdash.io.http import ProgressCallback, fetch_text
from marketdash.metrics.merge import merge_rentals
from marketdash.models import MergedRegionStats, RegionSeries
from .base import LoadState, ProviderConfig, SourceKind

logger = logging.getLogger(__name__)

MARKETS_KEY = "csv-parsed-markets"
META_KEY = "csv-dataset-meta"

# Progress bands (percent) for each loading step.
VALUES_DOWNLOAD = (0, 45)
VALUES_PARSED = 50
RENTALS_DOWNLOAD = (50, 80)
RENTALS_PARSED = 90
MERGED = 95

LoadListener = Callable[[int, str], None]


@dataclass(frozen=True)
class ImportResult:
    success: bool
    markets: int = 0
    error: Optional[str] = None


class BulkProvider:
    """Loads both wide files once, then serves every lookup from memory.

    The first ``await_ready`` (or ``get_stats``) starts a single load task;
    concurrent callers all await that task. Parsed markets are persisted in
    the durable cache, so later sessions skip the network entirely.
    """

    kind = SourceKind.BULK

    def __init__(
        self,
        config: ProviderConfig,
        cache: Optional[DurableCache] = None,
        client: Optional[httpx.AsyncClient] = None,
        listener: Optional[LoadListener] = None,
    ):
        self.config = config
        self._cache = cache or DurableCache(config.cache_dir, config.cache_namespace)
        self._client = client
        self.listener = listener
        self._index = MarketIndex.empty()
        self._state = LoadState.UNINITIALIZED
        self._load_task: Optional[asyncio.Task] = None
        self._error: Optional[BaseException] = None
        self._progress = 0
        self._message = ""
        self._meta: Dict[str, Any] = {}

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def message(self) -> str:
        return self._message

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def data_source(self) -> Optional[str]:
        return self._meta.get("data_source")

    @property
    def filename(self) -> Optional[str]:
        return self._meta.get("filename")

    async def await_ready(self) -> None:
        if self._state is LoadState.READY:
            return
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
        # Shielded: a caller giving up does not abort the shared download.
        await asyncio.shield(self._load_task)

    def all_records(self) -> List[MergedRegionStats]:
        return self._index.all_records()

    async def get_stats(self, query: str) -> Optional[MergedRegionStats]:
        await self.await_ready()
        record = self._index.lookup(query)
        if record is None:
            logger.info("Market not found: %s", query)
        return record

    async def import_text(self, text: str, filename: str) -> ImportResult:
        """Replace the dataset with a user-supplied wide file."""
        await self._settle()
        try:
            values = await self._parse(text)
        except (ValidationFailed, ParseFailed) as exc:
            logger.error("Import of %s rejected: %s", filename, exc)
            return ImportResult(False, error=str(exc))
        records = merge_rentals(values)
        meta = {"data_source": "user-upload", "filename": filename}
        await self._persist(records, meta)
        self._publish(records, meta)
        logger.info("Imported %s markets from %s", len(records), filename)
        return ImportResult(True, markets=len(records))

    async def clear_data(self) -> None:
        await self._settle()
        await self._cache.remove(MARKETS_KEY)
        await self._cache.remove(META_KEY)
        self._index = MarketIndex.empty()
        self._state = LoadState.UNINITIALIZED
        self._load_task = None
        self._error = None
        self._meta = {}
        self._reset_progress()
        logger.info("Cleared cached market data")

    async def reset_to_default(self) -> None:
        await self.clear_data()
        await self.await_ready()

    async def _settle(self) -> None:
        """Wait out an in-flight load; its failure is already recorded on the instance."""
        if self._load_task is not None and not self._load_task.done():
            try:
                await asyncio.shield(self._load_task)
            except LoadFailed:
                pass

    def _emit(self) -> None:
        if self.listener is not None:
            self.listener(self._progress, self._message)

    def _set_progress(self, value: float, message: Optional[str] = None) -> None:
        value = min(100, int(value))
        if value > self._progress:
            self._progress = value
        if message is not None:
            self._message = message
        self._emit()

    def _reset_progress(self) -> None:
        self._progress = 0
        self._message = ""
        self._emit()

    def _band(self, low: int, high: int) -> ProgressCallback:
        def report(pct: Optional[float]) -> None:
            if pct is not None:
                self._set_progress(low + (high - low) * pct / 100)

        return report

    async def _load(self) -> None:
        self._state = LoadState.LOADING
        try:
            await self._load_dataset()
        except LoadFailed:
            raise
        except Exception as exc:
            raise self._failed(LoadFailed(f"Market data load failed: {exc!r}", exc)) from exc

    async def _load_dataset(self) -> None:
        cached = await self._read_cached()
        if cached:
            logger.info("Loaded %s markets from cache (%s)", len(cached), self._meta.get("data_source", "unknown"))
            self._publish(cached, self._meta)
            return

        if not self.config.values_url:
            raise self._failed(LoadFailed("No home value file configured"))
        try:
            values = await self._load_values()
        except (DownloadFailed, ValidationFailed, ParseFailed) as exc:
            raise self._failed(LoadFailed(f"Could not load home values: {exc}", exc)) from exc

        rentals = await self._load_rentals()
        self._set_progress(RENTALS_PARSED, "Merging rental data...")
        records = merge_rentals(values, rentals)
        self._set_progress(MERGED, "Finalizing...")

        meta = {"data_source": "default", "filename": _filename(self.config.values_url)}
        await self._persist(records, meta)
        self._publish(records, meta)
        with_rentals = sum(1 for r in records if r.has_rentals)
        logger.info("Loaded %s markets (%s with rentals) from %s", len(records), with_rentals, self.config.values_url)

    def _failed(self, exc: LoadFailed) -> LoadFailed:
        self._state = LoadState.FAILED
        self._error = exc
        self._reset_progress()
        logger.error("Market data load failed: %s", exc)
        return exc

    async def _parse(self, text: str) -> List[RegionSeries]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, parse_wide_csv, text)

    async def _load_values(self) -> List[RegionSeries]:
        self._set_progress(VALUES_DOWNLOAD[0], "Downloading home values...")
        text = await fetch_text(self.config.values_url, on_progress=self._band(*VALUES_DOWNLOAD), client=self._client)
        self._set_progress(VALUES_DOWNLOAD[1], "Processing home values...")
        values = await self._parse(text)
        self._set_progress(VALUES_PARSED)
        return values

    async def _load_rentals(self) -> Optional[List[RegionSeries]]:
        if not self.config.rentals_url:
            logger.info("No rental file configured; serving home values only")
            return None
        self._set_progress(RENTALS_DOWNLOAD[0], "Downloading rental data...")
        try:
            text = await fetch_text(
                self.config.rentals_url, on_progress=self._band(*RENTALS_DOWNLOAD), client=self._client
            )
            self._set_progress(RENTALS_DOWNLOAD[1], "Processing rental data...")
            return await self._parse(text)
        except (DownloadFailed, ValidationFailed, ParseFailed) as exc:
            logger.warning("Rental data unavailable, continuing with home values only: %s", exc)
            return None

    async def _read_cached(self) -> List[MergedRegionStats]:
        payload = await self._cache.get(MARKETS_KEY)
        if not payload:
            return []
        try:
            records = [MergedRegionStats.from_dict(item) for item in payload]
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Cached markets unreadable, reloading from source: %s", exc)
            await self._cache.remove(MARKETS_KEY)
            return []
        self._meta = await self._cache.get(META_KEY) or {}
        return records

    async def _persist(self, records: List[MergedRegionStats], meta: Dict[str, Any]) -> None:
        try:
            await self._cache.set(MARKETS_KEY, [r.to_dict() for r in records], Ttl.never())
            await self._cache.set(META_KEY, meta, Ttl.never())
        except CacheWriteFailed as exc:
            logger.warning("Could not persist parsed markets; the next session will download again: %s", exc)

    def _publish(self, records: List[MergedRegionStats], meta: Dict[str, Any]) -> None:
        self._index = MarketIndex.build(records)
        self._meta = dict(meta)
        self._state = LoadState.READY
        self._error = None
        self._set_progress(100, "Complete!")


def _filename(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    return urlparse(url).path.rsplit("/", 1)[-1] or None

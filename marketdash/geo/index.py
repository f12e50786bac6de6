from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

from marketdash.models import MergedRegionStats
from .keys import lookup_keys

logger = logging.getLogger(__name__)


class MarketIndex:
    """Immutable multi-key lookup over region records.

    A rebuild produces a new instance; holders swap their reference, so a
    reader never observes a half-populated index.
    """

    def __init__(self, by_key: Mapping[str, MergedRegionStats], records: List[MergedRegionStats]):
        self._by_key = MappingProxyType(dict(by_key))
        self._by_lower_key = MappingProxyType({k.lower(): v for k, v in by_key.items()})
        self._records = tuple(records)

    @classmethod
    def build(cls, records: Iterable[MergedRegionStats]) -> "MarketIndex":
        by_key: Dict[str, MergedRegionStats] = {}
        unique: Dict[str, MergedRegionStats] = {}
        for record in records:
            for key in lookup_keys(record):
                by_key[key] = record
            unique[record.region_id] = record
        index = cls(by_key, list(unique.values()))
        logger.info("Indexed %s markets under %s lookup keys", len(unique), len(by_key))
        return index

    @classmethod
    def empty(cls) -> "MarketIndex":
        return cls({}, [])

    def lookup(self, query: str) -> Optional[MergedRegionStats]:
        query = query.strip()
        found = self._by_key.get(query)
        if found is None:
            found = self._by_lower_key.get(query.lower())
        return found

    def all_records(self) -> List[MergedRegionStats]:
        return list(self._records)

    @property
    def keys_count(self) -> int:
        return len(self._by_key)

    def __len__(self) -> int:
        return len(self._records)

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol, runtime_checkable

from marketdash.models import MergedRegionStats


class SourceKind(str, Enum):
    BULK = "bulk"
    ON_DEMAND = "on-demand"
    SAMPLE = "sample"


class LoadState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ProviderConfig:
    """Everything a provider needs; equal configs share one provider instance."""

    source_kind: SourceKind
    cache_namespace: str
    cache_dir: str
    values_url: Optional[str] = None
    rentals_url: Optional[str] = None
    base_url: Optional[str] = None
    directory_url: Optional[str] = None


@dataclass(frozen=True)
class ConfigError:
    source_kind: SourceKind
    reason: str


@runtime_checkable
class MarketProvider(Protocol):
    kind: SourceKind

    async def get_stats(self, query: str) -> Optional[MergedRegionStats]:
        ...


@runtime_checkable
class BulkCapable(Protocol):
    """Providers holding the full dataset in memory once ready."""

    async def await_ready(self) -> None:
        ...

    def all_records(self) -> List[MergedRegionStats]:
        ...

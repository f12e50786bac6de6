from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

import httpx

from marketdash import config as config_mod
from .base import ConfigError, MarketProvider, ProviderConfig, SourceKind
from .bulk import BulkProvider
from .on_demand import OnDemandProvider
from .sample import SampleProvider

logger = logging.getLogger(__name__)

SOURCE_DESCRIPTIONS = {
    SourceKind.BULK: "Full home value and rental files, cached locally after the first load",
    SourceKind.ON_DEMAND: "Per-region files fetched for each lookup",
    SourceKind.SAMPLE: "Small built-in sample dataset",
}


class ProviderRegistry:
    """Resolves the configured data source and hands out one provider per config.

    Resolution order: persisted user choice, deployment default, then the
    sample provider, which always succeeds.
    """

    def __init__(self, cfg: Dict[str, Any], client: Optional[httpx.AsyncClient] = None):
        self.cfg = cfg
        self._client = client
        self._providers: Dict[ProviderConfig, MarketProvider] = {}

    def default_kind(self) -> SourceKind:
        return SourceKind(self.cfg["source"]["kind"])

    def resolve_kind(self) -> SourceKind:
        preferred = config_mod.read_source_preference(self.cfg)
        if preferred:
            logger.debug("Using source %s from saved preference", preferred)
            return SourceKind(preferred)
        return self.default_kind()

    def resolve_config(self, kind: SourceKind) -> Union[ProviderConfig, ConfigError]:
        src = self.cfg["source"]
        base_url = src.get("base_url")
        if kind is SourceKind.BULK and not src.get("values_url"):
            return ConfigError(kind, "source.values_url is required for bulk mode")
        if kind is SourceKind.ON_DEMAND and not base_url:
            return ConfigError(kind, "source.base_url is required for on-demand mode")

        directory_url = src.get("directory_url")
        if not directory_url and base_url:
            directory_url = f"{base_url.rstrip('/')}/markets-index.json"
        return ProviderConfig(
            source_kind=kind,
            cache_namespace=src["namespace"],
            cache_dir=self.cfg["paths"]["cache_dir"],
            values_url=src.get("values_url") if kind is SourceKind.BULK else None,
            rentals_url=src.get("rentals_url") if kind is SourceKind.BULK else None,
            base_url=base_url if kind is SourceKind.ON_DEMAND else None,
            directory_url=directory_url if kind is SourceKind.ON_DEMAND else None,
        )

    def get(self) -> MarketProvider:
        candidates: List[SourceKind] = []
        for kind in (self.resolve_kind(), self.default_kind()):
            if kind not in candidates:
                candidates.append(kind)

        for kind in candidates:
            resolved = self.resolve_config(kind)
            if isinstance(resolved, ConfigError):
                logger.warning("Source %s is not usable: %s", kind.value, resolved.reason)
                continue
            return self._provider_for(resolved)

        logger.warning("Falling back to sample market data")
        fallback = self.resolve_config(SourceKind.SAMPLE)
        return self._provider_for(fallback)

    def _provider_for(self, provider_config: ProviderConfig) -> MarketProvider:
        provider = self._providers.get(provider_config)
        if provider is not None:
            logger.debug("Reusing %s provider", provider_config.source_kind.value)
            return provider
        logger.info("Creating %s provider", provider_config.source_kind.value)
        provider = self._create(provider_config)
        self._providers[provider_config] = provider
        return provider

    def _create(self, provider_config: ProviderConfig) -> MarketProvider:
        if provider_config.source_kind is SourceKind.BULK:
            return BulkProvider(provider_config, client=self._client)
        if provider_config.source_kind is SourceKind.ON_DEMAND:
            return OnDemandProvider(provider_config, client=self._client)
        return SampleProvider()

    def clear(self) -> None:
        logger.info("Clearing %s cached providers", len(self._providers))
        self._providers.clear()

    def set_preference(self, kind: Optional[SourceKind]) -> None:
        config_mod.write_source_preference(self.cfg, kind.value if kind is not None else None)
        self.clear()

    def available_sources(self) -> List[Dict[str, str]]:
        out: List[Dict[str, str]] = []
        for kind in SourceKind:
            resolved = self.resolve_config(kind)
            status = "requires-setup" if isinstance(resolved, ConfigError) else "available"
            out.append({
                "id": kind.value,
                "description": SOURCE_DESCRIPTIONS[kind],
                "status": status,
                "reason": resolved.reason if isinstance(resolved, ConfigError) else "",
            })
        return out

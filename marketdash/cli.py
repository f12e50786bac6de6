from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from marketdash import config as config_mod
from marketdash.datasets.zillow_wide.split import run_split
from marketdash.errors import LoadFailed, SourceUnreachable
from marketdash.io.cache import DurableCache
from marketdash.metrics.time_range import TIME_RANGES, filter_by_time_range
from marketdash.models import MergedRegionStats
from marketdash.providers.base import BulkCapable, SourceKind
from marketdash.providers.bulk import BulkProvider
from marketdash.providers.registry import ProviderRegistry
from marketdash.search import search_markets


logger = logging.getLogger("marketdash")


def _setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(asctime)s %(levelname)s %(message)s")


def _log_progress(progress: int, message: str) -> None:
    if message:
        logger.info("[%3d%%] %s", progress, message)


def _stats_payload(stats: MergedRegionStats, time_range: str) -> Dict[str, Any]:
    payload = stats.to_dict()
    payload["points"] = [[d, v] for d, v in filter_by_time_range(stats.points, time_range)]
    if stats.rental_points is not None:
        payload["rental_points"] = [[d, v] for d, v in filter_by_time_range(stats.rental_points, time_range)]
    return payload


async def _load(registry: ProviderRegistry) -> int:
    provider = registry.get()
    if isinstance(provider, BulkProvider):
        provider.listener = _log_progress
    if not isinstance(provider, BulkCapable):
        logger.info("%s provider fetches per request; nothing to preload", provider.kind.value)
        return 0
    await provider.await_ready()
    records = provider.all_records()
    with_rentals = sum(1 for r in records if r.has_rentals)
    logger.info("Ready: %s markets (%s with rentals) from %s provider", len(records), with_rentals, provider.kind.value)
    return 0


async def _lookup(registry: ProviderRegistry, query: str, time_range: str) -> int:
    provider = registry.get()
    stats = await provider.get_stats(query)
    if stats is None:
        logger.warning("No market data for %r", query)
        return 1
    print(json.dumps(_stats_payload(stats, time_range), indent=2))
    return 0


async def _search(registry: ProviderRegistry, query: str, limit: int) -> int:
    result = await search_markets(registry.get(), query, limit=limit)
    for region in result.results:
        print(f"{region.id}\t{region.name}\t{region.zip_code or ''}")
    logger.info("%s of %s matches shown", len(result.results), result.total)
    return 0


async def _import(registry: ProviderRegistry, path: str) -> int:
    provider = registry.get()
    if not isinstance(provider, BulkProvider):
        logger.error("Import needs the bulk source; current source is %s", provider.kind.value)
        return 2
    text = Path(path).read_text(encoding="utf-8-sig")
    result = await provider.import_text(text, Path(path).name)
    if not result.success:
        logger.error("Import failed: %s", result.error)
        return 1
    logger.info("Imported %s markets from %s", result.markets, path)
    return 0


async def _clear_cache(cfg: Dict[str, Any], registry: ProviderRegistry) -> int:
    cache = DurableCache(cfg["paths"]["cache_dir"], cfg["source"]["namespace"])
    removed = await cache.clear()
    registry.clear()
    logger.info("Removed %s cache entries from %s", removed, cache.root)
    return 0


def _use_source(registry: ProviderRegistry, kind: str) -> int:
    registry.set_preference(None if kind == "default" else SourceKind(kind))
    logger.info("Source preference set to %s (now resolving to %s)", kind, registry.resolve_kind().value)
    return 0


def _sources(registry: ProviderRegistry) -> int:
    active = registry.resolve_kind().value
    for src in registry.available_sources():
        marker = "*" if src["id"] == active else " "
        reason = f" ({src['reason']})" if src["reason"] else ""
        print(f"{marker} {src['id']:<10} {src['status']:<15} {src['description']}{reason}")
    return 0


def run(args: argparse.Namespace) -> int:
    cfg = config_mod.load_config(args.config)
    _setup_logging(args.log_level or cfg["project"]["log_level"])
    registry = ProviderRegistry(cfg)

    try:
        if args.cmd == "load":
            return asyncio.run(_load(registry))
        if args.cmd == "lookup":
            return asyncio.run(_lookup(registry, args.query, args.range))
        if args.cmd == "search":
            return asyncio.run(_search(registry, args.query, args.limit))
        if args.cmd == "import":
            return asyncio.run(_import(registry, args.path))
        if args.cmd == "clear-cache":
            return asyncio.run(_clear_cache(cfg, registry))
        if args.cmd == "use-source":
            return _use_source(registry, args.kind)
        if args.cmd == "sources":
            return _sources(registry)
        if args.cmd == "split":
            stats = run_split(cfg, args.values, args.rentals, args.out)
            return 1 if stats.errors and not stats.files_created else 0
    except SourceUnreachable as exc:
        logger.error("Could not reach the market data source: %s", exc)
        return 3
    except LoadFailed as exc:
        logger.error("Market data unavailable: %s", exc)
        return 3
    return 2


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(prog="marketdash", description="Housing market time-series loader and lookup.")
    parser.add_argument("--config", required=True, help="Path to config YAML")
    parser.add_argument("--log-level", default=None, help="Logging level (default from config)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("load", help="Load (or reload from cache) the configured dataset.")

    lookup_cmd = sub.add_parser("lookup", help="Show stats for a zip code or 'City, ST'.")
    lookup_cmd.add_argument("query")
    lookup_cmd.add_argument("--range", default="MAX", choices=sorted(TIME_RANGES) + ["MAX"])

    search_cmd = sub.add_parser("search", help="Find markets matching free text.")
    search_cmd.add_argument("query")
    search_cmd.add_argument("--limit", type=int, default=100)

    import_cmd = sub.add_parser("import", help="Replace the bulk dataset with a local wide CSV.")
    import_cmd.add_argument("path")

    split_cmd = sub.add_parser("split", help="Split bulk files into per-region files for on-demand mode.")
    split_cmd.add_argument("--values", help="Home value file path or URL (default source.values_url)")
    split_cmd.add_argument("--rentals", help="Rental file path or URL (default source.rentals_url)")
    split_cmd.add_argument("--out", help="Output directory (default project.split_dir)")

    use_cmd = sub.add_parser("use-source", help="Persist a data source choice.")
    use_cmd.add_argument("kind", choices=list(config_mod.SOURCE_KINDS) + ["default"])

    sub.add_parser("sources", help="List data sources and whether they are configured.")
    sub.add_parser("clear-cache", help="Remove cached parsed data.")

    args = parser.parse_args(argv)
    sys.exit(run(args))


if __name__ == "__main__":
    main()

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from marketdash.geo.keys import slugify
from marketdash.io.http import write_json
from marketdash.models import RegionDescriptor
from .fetch import fetch_wide_file
from .parse import read_wide_frame, validate_wide_csv
from .schema import DATASET, REGION_ID_COL, REGION_NAME_COL, STATE_COL, ZIP_RE

logger = logging.getLogger(__name__)

INDEX_FILENAME = "markets-index.json"


@dataclass
class SplitStats:
    markets_processed: int = 0
    files_created: int = 0
    errors: List[str] = field(default_factory=list)

    def add(self, other: "SplitStats") -> None:
        self.markets_processed += other.markets_processed
        self.files_created += other.files_created
        self.errors.extend(other.errors)


def split_wide_file(path: str, out_dir: str, file_type: str) -> Tuple[SplitStats, List[RegionDescriptor]]:
    """Write one header+row CSV per region to ``<out_dir>/<file_type>/<slug>.csv``."""
    with open(path, "r", encoding="utf-8-sig") as f:
        text = f.read()
    validation = validate_wide_csv(text)
    if not validation.valid:
        raise validation.error

    frame = read_wide_frame(text)
    type_dir = Path(out_dir) / file_type
    type_dir.mkdir(parents=True, exist_ok=True)
    total = len(frame) - 1
    logger.info("Splitting %s file %s (%s markets)", DATASET["files"].get(file_type, file_type), path, total)

    stats = SplitStats()
    markets: List[RegionDescriptor] = []
    seen: Dict[str, str] = {}
    for pos in range(1, len(frame)):
        row = frame.iloc[pos]
        region_id = str(row.iat[REGION_ID_COL]).strip()
        name = str(row.iat[REGION_NAME_COL]).strip()
        state = str(row.iat[STATE_COL]).strip()
        city = name.split(",", 1)[0].strip()
        market_key = slugify(f"{city}, {state}")
        if not region_id or not market_key:
            stats.errors.append(f"Row {pos}: missing region id or name")
            continue
        if market_key in seen:
            stats.errors.append(f"Market {region_id} ({name}): slug {market_key} already used by {seen[market_key]}")
            continue
        seen[market_key] = region_id

        frame.iloc[[0, pos]].to_csv(type_dir / f"{market_key}.csv", header=False, index=False)
        markets.append(
            RegionDescriptor(
                id=region_id,
                name=f"{city}, {state}",
                city=city,
                state=state,
                zip_code=name if ZIP_RE.match(name) else None,
                market_key=market_key,
            )
        )
        stats.markets_processed += 1
        stats.files_created += 1
        if stats.markets_processed % 1000 == 0:
            logger.info("%s progress: %s/%s markets", file_type, stats.markets_processed, total)

    logger.info("Split %s complete: %s files, %s errors", file_type, stats.files_created, len(stats.errors))
    return stats, markets


def run_split(
    cfg: Dict[str, Any],
    values_source: Optional[Any] = None,
    rentals_source: Optional[Any] = None,
    out_dir: Optional[str] = None,
) -> SplitStats:
    started = time.time()
    out_dir = out_dir or cfg["paths"]["split_dir"]
    values_source = values_source or cfg["source"].get("values_url")
    rentals_source = rentals_source or cfg["source"].get("rentals_url")
    if not values_source:
        raise ValueError("A home value file (source.values_url or --values) is required to split")

    raw_dir = Path(out_dir) / "raw"
    totals = SplitStats()

    values_path = fetch_wide_file(values_source, str(raw_dir / "zhvi.csv"), "values file")
    values_stats, markets = split_wide_file(values_path, out_dir, "zhvi")
    totals.add(values_stats)

    if rentals_source:
        rentals_path = fetch_wide_file(rentals_source, str(raw_dir / "zori.csv"), "rentals file")
        rental_stats, _ = split_wide_file(rentals_path, out_dir, "zori")
        totals.add(rental_stats)
    else:
        logger.warning("No rentals file given; only home value files were written")

    index_path = write_json([m.to_dict() for m in markets], str(Path(out_dir) / INDEX_FILENAME))
    logger.info(
        "Wrote %s with %s markets in %.2fs (%s errors)",
        index_path,
        len(markets),
        time.time() - started,
        len(totals.errors),
    )
    for err in totals.errors[:10]:
        logger.warning("  %s", err)
    return totals

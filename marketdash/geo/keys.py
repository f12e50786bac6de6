from __future__ import annotations

import re
from typing import List, Optional

from marketdash.models import MergedRegionStats

_NON_SLUG = re.compile(r"[^a-z0-9-]")
_DASHES = re.compile(r"-+")


def slugify(text: str) -> str:
    slug = _NON_SLUG.sub("-", text.lower())
    return _DASHES.sub("-", slug).strip("-")


def normalize_zip(zip_code: Optional[str]) -> Optional[str]:
    if zip_code is None or not str(zip_code).strip():
        return None
    return str(zip_code).strip().zfill(5)


def lookup_keys(record: MergedRegionStats) -> List[str]:
    keys: List[str] = []
    zip_code = normalize_zip(record.zip_code)
    if zip_code:
        keys.append(zip_code)
    keys.append(record.canonical_name)
    keys.append(record.canonical_name.lower())
    if record.city and record.state:
        keys.append(f"{record.city}-{record.state}")
        keys.append(f"{record.city.lower()}-{record.state.lower()}")
    return keys

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Tuple

import requests

from marketdash.io.http import download_file

logger = logging.getLogger(__name__)


def _as_url_list(val: Any) -> List[str]:
    if isinstance(val, list):
        return [str(v) for v in val if v]
    if isinstance(val, str) and val:
        return [val]
    return []


def candidate_sources(val: Any) -> List[Tuple[str, str]]:
    if isinstance(val, dict):
        local_path = val.get("local_path")
        if local_path:
            return [("local", str(local_path))]
        urls = val.get("urls") or val.get("url") or []
        return [("url", u) for u in _as_url_list(urls)]
    if isinstance(val, str):
        if Path(val).exists():
            return [("local", val)]
        return [("url", val)] if val else []
    if isinstance(val, list):
        return [("url", u) for u in _as_url_list(val)]
    return []


def fetch_wide_file(source: Any, out_path: str, label: str) -> str:
    """Return a local path for `source` (a path, URL, URL list or {local_path|urls} mapping)."""
    candidates = candidate_sources(source)
    if not candidates:
        raise ValueError(f"{label} must be a URL, list of URLs, or local_path")
    for kind, candidate in candidates:
        if kind == "local":
            if Path(candidate).exists():
                return candidate
            logger.warning("%s local file not found: %s", label, candidate)
            continue
        try:
            return download_file(candidate, out_path)
        except requests.HTTPError as exc:
            if exc.response is not None and exc.response.status_code == 404:
                logger.warning("%s URL not found: %s", label, candidate)
                continue
            raise
    raise RuntimeError(f"{label} download failed for all sources")

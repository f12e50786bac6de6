import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

SOURCE_KINDS = ("bulk", "on-demand", "sample")

ENV_OVERRIDES = {
    "MARKETDASH_SOURCE": ("source", "kind"),
    "MARKETDASH_VALUES_URL": ("source", "values_url"),
    "MARKETDASH_RENTALS_URL": ("source", "rentals_url"),
    "MARKETDASH_MARKET_DATA_URL": ("source", "base_url"),
    "MARKETDASH_DIRECTORY_URL": ("source", "directory_url"),
    "MARKETDASH_CACHE_NAMESPACE": ("source", "namespace"),
    "MARKETDASH_CACHE_DIR": ("project", "cache_dir"),
    "MARKETDASH_LOG_LEVEL": ("project", "log_level"),
}


def load_config(path: str) -> Dict[str, Any]:
    load_dotenv()
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    base_dir = cfg_path.parent.parent
    cfg.setdefault("project", {})
    cfg.setdefault("source", {})

    cfg["project"].setdefault("cache_dir", "data/cache")
    cfg["project"].setdefault("prefs_file", "data/prefs.json")
    cfg["project"].setdefault("split_dir", "data/markets")
    cfg["project"].setdefault("log_level", "INFO")

    cfg["source"].setdefault("kind", "bulk")
    cfg["source"].setdefault("namespace", "marketdash")
    for key in ("values_url", "rentals_url", "base_url", "directory_url"):
        cfg["source"].setdefault(key, None)

    for env_key, (section, key) in ENV_OVERRIDES.items():
        val = os.getenv(env_key, "").strip()
        if val:
            cfg[section][key] = val

    if cfg["source"]["kind"] not in SOURCE_KINDS:
        raise ValueError(f"source.kind must be one of {SOURCE_KINDS}, got {cfg['source']['kind']!r}")

    cfg["paths"] = {
        "base_dir": str(base_dir),
        "cache_dir": str((base_dir / cfg["project"]["cache_dir"]).resolve()),
        "prefs_file": str((base_dir / cfg["project"]["prefs_file"]).resolve()),
        "split_dir": str((base_dir / cfg["project"]["split_dir"]).resolve()),
    }

    return cfg


def read_source_preference(cfg: Dict[str, Any]) -> Optional[str]:
    """The source kind a user picked explicitly, if any."""
    prefs_path = Path(cfg["paths"]["prefs_file"])
    if not prefs_path.exists():
        return None
    try:
        with prefs_path.open("r", encoding="utf-8") as f:
            prefs = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable preferences %s: %s", prefs_path, exc)
        return None
    kind = prefs.get("source_kind") if isinstance(prefs, dict) else None
    if kind not in SOURCE_KINDS:
        return None
    return kind


def write_source_preference(cfg: Dict[str, Any], kind: Optional[str]) -> None:
    if kind is not None and kind not in SOURCE_KINDS:
        raise ValueError(f"Unknown source kind {kind!r}")
    prefs_path = Path(cfg["paths"]["prefs_file"])
    if kind is None:
        prefs_path.unlink(missing_ok=True)
        return
    prefs_path.parent.mkdir(parents=True, exist_ok=True)
    with prefs_path.open("w", encoding="utf-8") as f:
        json.dump({"source_kind": kind}, f)

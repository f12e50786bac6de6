from __future__ import annotations

import asyncio
import functools
import hashlib
import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Union

from marketdash.errors import CacheCorrupt, CacheWriteFailed
from marketdash.geo.keys import slugify

logger = logging.getLogger(__name__)

# Bump whenever the shape of cached payloads changes; older entries are then read as misses.
CACHE_SCHEMA_VERSION = 1


def ensure_dir(path: Union[str, Path]) -> str:
    Path(path).mkdir(parents=True, exist_ok=True)
    return str(path)


@dataclass(frozen=True)
class Ttl:
    kind: str
    seconds: float = 0.0

    @classmethod
    def never(cls) -> "Ttl":
        return cls("never")

    @classmethod
    def of(cls, duration: Union[timedelta, float, int]) -> "Ttl":
        seconds = duration.total_seconds() if isinstance(duration, timedelta) else float(duration)
        if seconds < 0:
            raise ValueError("TTL must not be negative")
        return cls("duration", seconds)

    @property
    def is_never(self) -> bool:
        return self.kind == "never"

    def is_expired(self, stored_at: float, now: float) -> bool:
        return not self.is_never and now > stored_at + self.seconds

    def to_json(self) -> Dict[str, Any]:
        if self.is_never:
            return {"kind": "never"}
        return {"kind": "duration", "seconds": self.seconds}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Ttl":
        kind = data.get("kind")
        if kind == "never":
            return cls.never()
        if kind == "duration":
            return cls.of(float(data["seconds"]))
        raise ValueError(f"Unknown ttl kind {kind!r}")


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    stored_at: float
    ttl: Ttl


class DurableCache:
    """File-backed key/value store that outlives the process.

    Each key is one JSON envelope under ``<cache_dir>/<namespace>/`` carrying
    the schema version, store time and TTL. File I/O runs in the default
    executor so callers on the event loop never block on disk.
    """

    def __init__(self, cache_dir: Union[str, Path], namespace: str, schema_version: int = CACHE_SCHEMA_VERSION):
        self.namespace = namespace
        self.schema_version = schema_version
        self.root = Path(cache_dir) / (slugify(namespace) or "default")

    def _path(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]
        return self.root / f"{slugify(key) or 'key'}-{digest}.json"

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    async def get(self, key: str) -> Optional[Any]:
        entry = await self.get_entry(key)
        return None if entry is None else entry.value

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        return await self._run(self._get_sync, key)

    async def set(self, key: str, value: Any, ttl: Ttl) -> None:
        await self._run(self._set_sync, key, value, ttl)

    async def remove(self, key: str) -> bool:
        return await self._run(self._remove_path, self._path(key))

    async def clear(self) -> int:
        return await self._run(self._clear_sync)

    def _read_envelope(self, path: Path, key: str) -> CacheEntry:
        try:
            with path.open("r", encoding="utf-8") as f:
                envelope = json.load(f)
        except ValueError as exc:
            raise CacheCorrupt(f"unreadable entry {path.name}: {exc}") from exc
        if not isinstance(envelope, dict):
            raise CacheCorrupt(f"unexpected envelope type in {path.name}")
        if envelope.get("schema_version") != self.schema_version:
            raise CacheCorrupt(
                f"schema version {envelope.get('schema_version')!r} does not match {self.schema_version}"
            )
        if envelope.get("key") != key:
            raise CacheCorrupt(f"entry {path.name} belongs to key {envelope.get('key')!r}")
        try:
            return CacheEntry(
                key=key,
                value=envelope["value"],
                stored_at=float(envelope["stored_at"]),
                ttl=Ttl.from_json(envelope["ttl"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CacheCorrupt(f"malformed envelope {path.name}: {exc}") from exc

    def _get_sync(self, key: str) -> Optional[CacheEntry]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            entry = self._read_envelope(path, key)
        except CacheCorrupt as exc:
            logger.debug("Discarding cache entry %s: %s", key, exc)
            self._discard(path)
            return None
        except OSError as exc:
            logger.warning("Cache entry %s unreadable, treating as a miss: %s", key, exc)
            return None
        if entry.ttl.is_expired(entry.stored_at, time.time()):
            logger.debug("Cache entry %s expired", key)
            self._discard(path)
            return None
        return entry

    def _set_sync(self, key: str, value: Any, ttl: Ttl) -> None:
        envelope = {
            "schema_version": self.schema_version,
            "key": key,
            "stored_at": time.time(),
            "ttl": ttl.to_json(),
            "value": value,
        }
        try:
            payload = json.dumps(envelope, allow_nan=False)
        except (TypeError, ValueError) as exc:
            raise CacheWriteFailed(f"Value for {key!r} cannot be serialized: {exc}") from exc

        path = self._path(key)
        tmp_path: Optional[Path] = None
        try:
            ensure_dir(self.root)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.root, prefix=f"{path.name}.", suffix=".tmp", delete=False
            ) as f:
                tmp_path = Path(f.name)
                f.write(payload)
            os.replace(tmp_path, path)
        except OSError as exc:
            if tmp_path is not None:
                self._discard(tmp_path)
            raise CacheWriteFailed(f"Could not write cache entry {key!r}: {exc}") from exc

    def _remove_path(self, path: Path) -> bool:
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False

    def _discard(self, path: Path) -> None:
        try:
            self._remove_path(path)
        except OSError as exc:
            logger.warning("Could not remove cache file %s: %s", path, exc)

    def _clear_sync(self) -> int:
        if not self.root.exists():
            return 0
        removed = 0
        for path in self.root.glob("*.json"):
            if not path.is_file():
                continue
            removed += int(self._remove_path(path))
        return removed

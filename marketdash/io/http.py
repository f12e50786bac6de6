from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from marketdash.errors import DownloadFailed, SourceUnreachable

logger = logging.getLogger(__name__)

USER_AGENT = "marketdash/0.1"

# Receives cumulative percent downloaded, or None while the total size is unknown.
ProgressCallback = Callable[[Optional[float]], None]

_CONNECTIVITY_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


def build_session(retries: int = 3, backoff: float = 0.5) -> requests.Session:
    retry = Retry(
        total=retries,
        backoff_factor=backoff,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET",),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def download_file(url: str, out_path: str, headers: Optional[Dict[str, str]] = None) -> str:
    session = build_session()
    r = session.get(url, headers=headers, timeout=120)
    r.raise_for_status()
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "wb") as f:
        f.write(r.content)
    return out_path


def write_json(data: Any, out_path: str) -> str:
    Path(out_path).parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    return out_path


def build_async_client(timeout: float = 120.0) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=10.0),
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    )


def _content_length(response: httpx.Response) -> Optional[int]:
    raw = response.headers.get("content-length")
    try:
        total = int(raw) if raw else 0
    except ValueError:
        return None
    return total if total > 0 else None


def _report(on_progress: Optional[ProgressCallback], value: Optional[float]) -> None:
    if on_progress is not None:
        on_progress(value)


async def fetch_text(
    url: str,
    on_progress: Optional[ProgressCallback] = None,
    client: Optional[httpx.AsyncClient] = None,
    encoding: str = "utf-8-sig",
) -> str:
    """Stream `url` to text, reporting cumulative percent as chunks arrive.

    Without a Content-Length the callback receives None until the body is
    complete, then 100. Raises DownloadFailed (SourceUnreachable when no
    connection could be made).
    """
    owns_client = client is None
    http = client or build_async_client()
    chunks: List[bytes] = []
    try:
        async with http.stream("GET", url) as response:
            if not response.is_success:
                raise DownloadFailed(url, status_code=response.status_code)
            total = _content_length(response)
            last = 0.0
            _report(on_progress, 0.0 if total else None)
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
                if total:
                    pct = min(100.0, response.num_bytes_downloaded / total * 100)
                    if pct > last:
                        last = pct
                        _report(on_progress, pct)
    except _CONNECTIVITY_ERRORS as exc:
        raise SourceUnreachable(url, exc) from exc
    except httpx.HTTPError as exc:
        raise DownloadFailed(url, exc) from exc
    finally:
        if owns_client:
            await http.aclose()

    body = b"".join(chunks)
    try:
        text = body.decode(encoding)
    except UnicodeDecodeError as exc:
        raise DownloadFailed(url, exc) from exc
    _report(on_progress, 100.0)
    logger.debug("Downloaded %s (%s bytes)", url, len(body))
    return text


async def fetch_json(url: str, client: Optional[httpx.AsyncClient] = None) -> Any:
    owns_client = client is None
    http = client or build_async_client(timeout=30.0)
    try:
        r = await http.get(url)
        if not r.is_success:
            raise DownloadFailed(url, status_code=r.status_code)
        return r.json()
    except _CONNECTIVITY_ERRORS as exc:
        raise SourceUnreachable(url, exc) from exc
    except httpx.HTTPError as exc:
        raise DownloadFailed(url, exc) from exc
    except ValueError as exc:
        raise DownloadFailed(url, exc) from exc
    finally:
        if owns_client:
            await http.aclose()

"""
Pytest configuration and shared fixtures.

Network access is replaced by an httpx MockTransport routing exact URLs to
canned responses; the durable cache lives under pytest's tmp_path.
"""
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

import httpx
import pytest
import yaml

from marketdash import config as config_mod
from marketdash.providers.base import ProviderConfig, SourceKind

VALUES_URL = "https://data.test/default-housing-data.csv"
RENTALS_URL = "https://data.test/default-rental-data.csv"
BASE_URL = "https://data.test/markets"

META_HEADER = ["RegionID", "RegionName", "State", "SizeRank", "RegionType", "StateName", "Metro", "CountyName"]


def wide_csv(dates: Sequence[str], rows: List[Sequence[Any]]) -> str:
    """Build a wide file; each row is (id, name, state, *values)."""
    lines = [",".join(META_HEADER + list(dates))]
    for region_id, name, state, *values in rows:
        quoted = f'"{name}"' if "," in name else name
        meta = [str(region_id), quoted, state, "", "", "", "", ""]
        lines.append(",".join(meta + [str(v) for v in values]))
    return "\n".join(lines) + "\n"


VALUES_CSV = wide_csv(
    ["2020-01", "2020-02", "2020-03"],
    [
        (1, "Detroit, MI", "MI", 300000, 305000, 310000),
        (2, "Austin, TX", "TX", 500000, 490000, ""),
        (3, "90210", "CA", 3000000, 3100000, 3150000),
    ],
)

RENTALS_CSV = wide_csv(
    ["2020-02", "2020-03"],
    [
        (1, "Detroit, MI", "MI", 1200, 1260),
        (99, "Nowhere, ZZ", "ZZ", 800, 810),
    ],
)

# Not valid UTF-8.
UNDECODABLE_BODY = b"\xff\xfe\x00garbage\x80\x81"


def bytes_route(body: bytes):
    return lambda request: httpx.Response(200, content=body)


def make_client(routes: Dict[str, Any], calls: Optional[Counter] = None) -> httpx.AsyncClient:
    """Async client whose transport answers from `routes`; unknown URLs get 404.

    A route may be response text, an httpx.Response, a callable taking the
    request, or an httpx exception class to raise.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if calls is not None:
            calls[url] += 1
        route = routes.get(url)
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, type) and issubclass(route, httpx.HTTPError):
            raise route("simulated failure", request=request)
        if isinstance(route, httpx.Response):
            return route
        if callable(route):
            return route(request)
        return httpx.Response(200, text=route)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def calls():
    return Counter()


@pytest.fixture
def bulk_config(tmp_path):
    return ProviderConfig(
        source_kind=SourceKind.BULK,
        cache_namespace="test",
        cache_dir=str(tmp_path / "cache"),
        values_url=VALUES_URL,
        rentals_url=RENTALS_URL,
    )


@pytest.fixture
def on_demand_config(tmp_path):
    return ProviderConfig(
        source_kind=SourceKind.ON_DEMAND,
        cache_namespace="test",
        cache_dir=str(tmp_path / "cache"),
        base_url=BASE_URL,
        directory_url=f"{BASE_URL}/markets-index.json",
    )


@pytest.fixture(scope="function")
def clean_env(monkeypatch):
    """Remove marketdash env overrides so config files are read as written."""
    for var in config_mod.ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(config_mod, "load_dotenv", lambda: None)
    yield


@pytest.fixture
def write_config(tmp_path, clean_env):
    """Write a YAML config under tmp_path/config and load it."""

    def _write(source: Optional[Dict[str, Any]] = None, project: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        cfg_dir = tmp_path / "config"
        cfg_dir.mkdir(exist_ok=True)
        path = cfg_dir / "marketdash.yaml"
        path.write_text(yaml.safe_dump({"source": source or {}, "project": project or {}}), encoding="utf-8")
        return config_mod.load_config(str(path))

    return _write

"""
Tests for the on-demand provider fetching per-region files.
"""
import dataclasses

import httpx
import pytest

from conftest import BASE_URL, UNDECODABLE_BODY, bytes_route, make_client, wide_csv
from marketdash.errors import SourceUnreachable
from marketdash.providers.base import BulkCapable
from marketdash.providers.on_demand import OnDemandProvider

DETROIT_VALUES = wide_csv(["2020-01", "2020-02"], [(1, "Detroit, MI", "MI", 300000, 306000)])
DETROIT_RENTALS = wide_csv(["2020-01", "2020-02"], [(1, "Detroit, MI", "MI", 1200, 1230)])

VALUES_ROUTE = f"{BASE_URL}/zhvi/detroit-mi.csv"
RENTALS_ROUTE = f"{BASE_URL}/zori/detroit-mi.csv"


class TestOnDemandProvider:
    def test_requires_base_url(self, on_demand_config):
        with pytest.raises(ValueError):
            OnDemandProvider(dataclasses.replace(on_demand_config, base_url=None))

    def test_not_bulk_capable(self, on_demand_config):
        assert not isinstance(OnDemandProvider(on_demand_config), BulkCapable)

    def test_market_urls(self, on_demand_config):
        assert OnDemandProvider(on_demand_config).market_urls("detroit-mi") == (VALUES_ROUTE, RENTALS_ROUTE)

    @pytest.mark.asyncio
    async def test_found_with_rentals(self, on_demand_config, calls):
        routes = {VALUES_ROUTE: DETROIT_VALUES, RENTALS_ROUTE: DETROIT_RENTALS}
        async with make_client(routes, calls) as client:
            stats = await OnDemandProvider(on_demand_config, client=client).get_stats("Detroit, MI")
        assert stats.city == "Detroit"
        assert stats.current_value == 306000.0
        assert stats.percent_change == pytest.approx(2.0)
        assert stats.current_rent == 1230.0
        assert stats.rent_change == pytest.approx(2.5)
        assert calls[VALUES_ROUTE] == 1
        assert calls[RENTALS_ROUTE] == 1

    @pytest.mark.asyncio
    async def test_slug_normalizes_query(self, on_demand_config):
        async with make_client({VALUES_ROUTE: DETROIT_VALUES}) as client:
            stats = await OnDemandProvider(on_demand_config, client=client).get_stats("  detroit MI ")
        assert stats is not None
        assert stats.region_id == "1"

    @pytest.mark.asyncio
    async def test_rentals_missing_is_value_only(self, on_demand_config):
        async with make_client({VALUES_ROUTE: DETROIT_VALUES}) as client:
            stats = await OnDemandProvider(on_demand_config, client=client).get_stats("Detroit, MI")
        assert stats.current_value == 306000.0
        assert stats.rental_points is None
        assert stats.current_rent is None

    @pytest.mark.asyncio
    async def test_undecodable_rentals_is_value_only(self, on_demand_config):
        routes = {VALUES_ROUTE: DETROIT_VALUES, RENTALS_ROUTE: bytes_route(UNDECODABLE_BODY)}
        async with make_client(routes) as client:
            stats = await OnDemandProvider(on_demand_config, client=client).get_stats("Detroit, MI")
        assert stats.current_value == 306000.0
        assert stats.rental_points is None

    @pytest.mark.asyncio
    async def test_undecodable_values_is_not_found(self, on_demand_config):
        routes = {VALUES_ROUTE: bytes_route(UNDECODABLE_BODY), RENTALS_ROUTE: DETROIT_RENTALS}
        async with make_client(routes) as client:
            assert await OnDemandProvider(on_demand_config, client=client).get_stats("Detroit, MI") is None

    @pytest.mark.asyncio
    async def test_values_missing_is_not_found(self, on_demand_config):
        async with make_client({RENTALS_ROUTE: DETROIT_RENTALS}) as client:
            assert await OnDemandProvider(on_demand_config, client=client).get_stats("Detroit, MI") is None

    @pytest.mark.asyncio
    async def test_unusable_values_is_not_found(self, on_demand_config):
        async with make_client({VALUES_ROUTE: "<html>moved</html>"}) as client:
            assert await OnDemandProvider(on_demand_config, client=client).get_stats("Detroit, MI") is None

    @pytest.mark.asyncio
    async def test_empty_slug(self, on_demand_config, calls):
        async with make_client({}, calls) as client:
            assert await OnDemandProvider(on_demand_config, client=client).get_stats(" ,, ") is None
        assert sum(calls.values()) == 0

    @pytest.mark.asyncio
    async def test_unreachable_source_raises(self, on_demand_config):
        routes = {VALUES_ROUTE: httpx.ConnectError, RENTALS_ROUTE: httpx.ConnectError}
        async with make_client(routes) as client:
            with pytest.raises(SourceUnreachable):
                await OnDemandProvider(on_demand_config, client=client).get_stats("Detroit, MI")

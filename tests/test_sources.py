"""
Tests for sources.py
"""
from dataclasses import replace

import pytest
from eth_abi import decode
from unittest.mock import AsyncMock, MagicMock

from conftest import ORDERBOOK_B, TKN, USDC, make_opposing_pair
from orderbook_arb.route_client import RouteQuote
from orderbook_arb.settlement import MAX_UINT256, TAKE_ORDERS_CONFIG_TUPLE
from orderbook_arb.sources import CounterpartyOrders, RouteSource


class TestRouteSource:
    """Tests for RouteSource."""

    @pytest.mark.asyncio
    async def test_quote_at_sells_the_sell_token(self, order_pair, route_quote):
        route_client = MagicMock()
        route_client.find_route = AsyncMock(return_value=route_quote)
        source = RouteSource(route_client)

        quote = await source.quote_at(order_pair, 10 ** 18)

        assert quote is route_quote
        route_client.find_route.assert_awaited_once_with(TKN, USDC, 10 ** 18)

    @pytest.mark.asyncio
    async def test_quote_at_no_route(self, order_pair):
        route_client = MagicMock()
        route_client.find_route = AsyncMock(return_value=None)

        assert await RouteSource(route_client).quote_at(order_pair, 1) is None

    def test_exchange_data_wraps_route_code(self, order_pair, route_quote):
        data = RouteSource(MagicMock()).exchange_data(order_pair, route_quote)

        assert decode(["bytes"], data) == (b"\x01\x02",)

    def test_visualize(self, route_quote):
        route_quote.legs = [{
            "absolutePortion": 0.5,
            "tokenFrom": {"symbol": "TKN"},
            "tokenTo": {"symbol": "USDC"},
            "poolName": "UniV3",
            "poolAddress": "0xpool",
        }]

        assert RouteSource(MagicMock()).visualize(route_quote) == ["50.00% --- TKN/USDC (UniV3 0xpool)"]


class TestCounterpartyOrders:
    """Tests for CounterpartyOrders."""

    @pytest.fixture
    def counterparty(self, order):
        return CounterpartyOrders(make_opposing_pair(ORDERBOOK_B, order))

    def test_opposing_max_input(self, counterparty, order_pair):
        """Test 1 TKN at a 1.5 ratio asks 1.5 USDC from the opposing orders."""
        assert counterparty.opposing_max_input(order_pair, 10 ** 18) == 1_500_000

    def test_opposing_max_io_ratio(self, counterparty, order_pair):
        assert counterparty.opposing_max_io_ratio(order_pair) == 10 ** 36 // (15 * 10 ** 17)

    def test_opposing_max_io_ratio_zero_ratio(self, counterparty, order_pair):
        leg = replace(order_pair.take_orders[0], ratio=0)
        request = replace(order_pair, take_orders=(leg,))
        assert counterparty.opposing_max_io_ratio(request) == MAX_UINT256

    @pytest.mark.asyncio
    async def test_quote_at(self, counterparty, order_pair):
        quote = await counterparty.quote_at(order_pair, 10 ** 18)

        assert quote.token_in == TKN
        assert quote.token_out == USDC
        assert quote.amount_in == 10 ** 18
        assert quote.amount_out == 1_500_000

    @pytest.mark.asyncio
    async def test_quote_at_capped_by_opposing_orders(self, order, order_pair):
        """Test the implied output can't exceed what the opposing orders hold."""
        counterparty = CounterpartyOrders(make_opposing_pair(ORDERBOOK_B, order, max_output=10 ** 18))

        quote = await counterparty.quote_at(order_pair, 10 ** 18)

        assert quote.amount_out == 1_000_000

    @pytest.mark.asyncio
    async def test_quote_at_without_orders(self, order, order_pair):
        counterparty = CounterpartyOrders(make_opposing_pair(ORDERBOOK_B, order, legs=0))

        assert await counterparty.quote_at(order_pair, 10 ** 18) is None

    def test_exchange_data(self, counterparty, order_pair):
        """Test exchange data targets the opposing orderbook with a takeOrders2() call."""
        quote = RouteQuote(TKN, USDC, 10 ** 18, 1_500_000)

        data = counterparty.exchange_data(order_pair, quote)

        target, spender, calldata = decode(["address", "address", "bytes"], data)
        assert target.lower() == ORDERBOOK_B
        assert spender.lower() == ORDERBOOK_B
        (config,) = decode([TAKE_ORDERS_CONFIG_TUPLE], calldata[4:])
        assert config[0] == 1
        assert config[1] == 1_500_000
        assert config[2] == 10 ** 36 // (15 * 10 ** 17)
        assert len(config[3]) == 1

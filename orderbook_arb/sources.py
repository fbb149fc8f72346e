"""
Liquidity sources a settlement request can be filled against.

A source quotes the implied output of selling the request's sell token
for its buy token at a given size, and supplies the exchange data that
the arb contract forwards to perform that swap.
"""
import logging
from typing import List, Optional

from eth_abi import encode

from .route_client import RouteClient, RouteQuote, visualize_route
from .settlement import MAX_UINT256, OrderPairObject, TakeOrdersConfig, encode_take_orders
from .utils import to_fixed18

logger = logging.getLogger(__name__)


class CounterpartySource:
    """Common interface of the liquidity sources."""

    async def quote_at(self, request: OrderPairObject, size: int) -> Optional[RouteQuote]:
        raise NotImplementedError

    def exchange_data(self, request: OrderPairObject, quote: RouteQuote) -> bytes:
        raise NotImplementedError

    def visualize(self, quote: RouteQuote) -> List[str]:
        raise NotImplementedError


class RouteSource(CounterpartySource):
    """Liquidity from the route API (AMM pools)."""

    def __init__(self, route_client: RouteClient):
        self.route_client = route_client

    async def quote_at(self, request: OrderPairObject, size: int) -> Optional[RouteQuote]:
        return await self.route_client.find_route(request.sell_token, request.buy_token, size)

    def exchange_data(self, request: OrderPairObject, quote: RouteQuote) -> bytes:
        return encode(["bytes"], [quote.route_code])

    def visualize(self, quote: RouteQuote) -> List[str]:
        return visualize_route(quote.legs)


class CounterpartyOrders(CounterpartySource):
    """
    Liquidity from opposing orders resting on another orderbook.

    The opposing orders sell the request's buy token and buy its sell
    token. They are taken with takeOrders2() on their own orderbook, sized
    by the request's first leg ratio so that whatever the main orders pay
    out is exactly what the opposing orders are asked for.
    """

    def __init__(self, orders: OrderPairObject):
        self.orders = orders

    @property
    def orderbook(self) -> str:
        return self.orders.orderbook

    @staticmethod
    def _main_ratio(request: OrderPairObject) -> int:
        return request.take_orders[0].ratio if request.take_orders else 0

    def opposing_max_input(self, request: OrderPairObject, size: int) -> int:
        """
        Amount of the request's buy token to take from the opposing orders.

        Args:
            request: Main settlement request
            size: Size of the main take, in sell token decimals

        Returns:
            Amount in buy token decimals
        """
        size_fixed = to_fixed18(size, request.sell_token_decimals)
        return size_fixed * self._main_ratio(request) // 10 ** (36 - request.buy_token_decimals)

    def opposing_max_io_ratio(self, request: OrderPairObject) -> int:
        """Inverse of the main ratio, 18 decimals fixed point."""
        ratio = self._main_ratio(request)
        return 10 ** 36 // ratio if ratio else MAX_UINT256

    async def quote_at(self, request: OrderPairObject, size: int) -> Optional[RouteQuote]:
        if not self.orders.take_orders:
            return None
        amount_out = min(self.opposing_max_input(request, size), self.orders.available_size())
        return RouteQuote(
            token_in=request.sell_token,
            token_out=request.buy_token,
            amount_in=size,
            amount_out=amount_out,
        )

    def exchange_data(self, request: OrderPairObject, quote: RouteQuote) -> bytes:
        config = TakeOrdersConfig(
            minimum_input=1,
            maximum_input=self.opposing_max_input(request, quote.amount_in),
            maximum_io_ratio=self.opposing_max_io_ratio(request),
            orders=self.orders.take_orders,
        )
        calldata = encode_take_orders(config)
        return encode(["address", "address", "bytes"], [self.orderbook, self.orderbook, calldata])

    def visualize(self, quote: RouteQuote) -> List[str]:
        return [f"100.00% --- {self.orders.buy_token_symbol}/{self.orders.sell_token_symbol} (orderbook {self.orderbook})"]

"""
Pytest configuration and fixtures for orderbook arbitrage bot tests.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from orderbook_arb.config import ArbConfig
from orderbook_arb.route_client import RouteQuote
from orderbook_arb.settlement import IO, Evaluable, Order, OrderPairObject, TakeOrder

ARB_ADDRESS = "0x" + "a1" * 20
SENDER = "0x" + "b0" * 20
ORDERBOOK_A = "0x" + "0a" * 20
ORDERBOOK_B = "0x" + "0b" * 20
ORDERBOOK_C = "0x" + "0c" * 20
USDC = "0x" + "11" * 20
TKN = "0x" + "22" * 20
WETH = "0x" + "77" * 20


@pytest.fixture
def order():
    """Order buying USDC and selling TKN."""
    return Order(
        owner="0x" + "33" * 20,
        handle_io=False,
        evaluable=Evaluable(
            interpreter="0x" + "44" * 20,
            store="0x" + "55" * 20,
            expression="0x" + "66" * 20,
        ),
        valid_inputs=(IO(USDC, 6, 1),),
        valid_outputs=(IO(TKN, 18, 1),),
    )


@pytest.fixture
def take_order(order):
    """Order leg quoted at 1.5 USDC per TKN with 1 TKN fillable."""
    return TakeOrder(
        id="0x" + "01" * 32,
        order=order,
        input_io_index=0,
        output_io_index=0,
        ratio=15 * 10 ** 17,
        max_output=10 ** 18,
    )


@pytest.fixture
def order_pair(take_order):
    """USDC/TKN pair on orderbook A, 1 TKN available."""
    return OrderPairObject(
        orderbook=ORDERBOOK_A,
        buy_token=USDC,
        buy_token_symbol="USDC",
        buy_token_decimals=6,
        sell_token=TKN,
        sell_token_symbol="TKN",
        sell_token_decimals=18,
        take_orders=(take_order,),
    )


def make_opposing_pair(orderbook, order, max_output=10 ** 19, legs=1):
    """TKN/USDC pair (buys TKN, sells USDC) on another orderbook."""
    opposing_order = Order(
        owner=order.owner,
        handle_io=False,
        evaluable=order.evaluable,
        valid_inputs=(IO(TKN, 18, 2),),
        valid_outputs=(IO(USDC, 6, 2),),
    )
    leg = TakeOrder(
        id="0x" + "02" * 32,
        order=opposing_order,
        input_io_index=0,
        output_io_index=0,
        ratio=6 * 10 ** 17,
        max_output=max_output,
    )
    return OrderPairObject(
        orderbook=orderbook,
        buy_token=TKN,
        buy_token_symbol="TKN",
        buy_token_decimals=18,
        sell_token=USDC,
        sell_token_symbol="USDC",
        sell_token_decimals=6,
        take_orders=(leg,) * legs,
    )


@pytest.fixture
def arb_config():
    """Default ArbConfig for testing."""
    return ArbConfig(
        arb_address=ARB_ADDRESS,
        rpc_url="http://localhost:8545",
        route_api_url="http://localhost:3000",
        sender_address=SENDER,
    )


@pytest.fixture
def mock_chain_client():
    """Chain client mock: block 123, every simulation estimates 100k gas."""
    client = AsyncMock()
    client.sender = SENDER
    client.get_block_number.return_value = 123
    client.estimate_gas.return_value = 100_000
    client.get_gas_price.return_value = 10 ** 9
    return client


@pytest.fixture
def route_quote():
    """Quote of 1 TKN for 2 USDC."""
    return RouteQuote(
        token_in=TKN,
        token_out=USDC,
        amount_in=10 ** 18,
        amount_out=2_000_000,
        route_code=b"\x01\x02",
        legs=[],
    )


@pytest.fixture
def mock_source():
    """Liquidity source mock quoting 2 USDC per TKN at any size, recording probed sizes."""
    source = MagicMock()
    source.probed = []

    async def quote_at(request, size):
        source.probed.append(size)
        return RouteQuote(
            token_in=request.sell_token,
            token_out=request.buy_token,
            amount_in=size,
            amount_out=size * 2 // 10 ** 12,
        )

    source.quote_at = AsyncMock(side_effect=quote_at)
    source.exchange_data = MagicMock(return_value=b"")
    source.visualize = MagicMock(return_value=["100.00% --- TKN/USDC (Pool 0xpool)"])
    return source

"""
Settlement data model: orders, order legs, settlement requests and the
arb() calldata built from them.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from eth_abi import encode
from eth_utils import keccak

from .utils import from_fixed18

MAX_UINT256 = 2 ** 256 - 1

# Solidity tuple signatures, used both for abi encoding and for the function selectors
IO_TUPLE = "(address,uint8,uint256)"
EVALUABLE_TUPLE = "(address,address,address)"
ORDER_TUPLE = f"(address,bool,{EVALUABLE_TUPLE},{IO_TUPLE}[],{IO_TUPLE}[])"
SIGNED_CONTEXT_TUPLE = "(address,uint256[],bytes)"
TAKE_ORDER_TUPLE = f"({ORDER_TUPLE},uint256,uint256,{SIGNED_CONTEXT_TUPLE}[])"
TAKE_ORDERS_CONFIG_TUPLE = f"(uint256,uint256,uint256,{TAKE_ORDER_TUPLE}[],bytes)"

ARB_SIGNATURE = f"arb({TAKE_ORDERS_CONFIG_TUPLE},uint256)"
TAKE_ORDERS_SIGNATURE = f"takeOrders2({TAKE_ORDERS_CONFIG_TUPLE})"


def function_selector(signature: str) -> bytes:
    """First 4 bytes of the keccak hash of a canonical function signature."""
    return keccak(text=signature)[:4]


@dataclass(frozen=True)
class IO:
    """One vault slot of an order: token, its decimals and the vault id."""
    token: str
    decimals: int
    vault_id: int

    def to_abi(self) -> Tuple[str, int, int]:
        return (self.token, self.decimals, self.vault_id)


@dataclass(frozen=True)
class Evaluable:
    """Interpreter/store/expression triple an order is evaluated with."""
    interpreter: str
    store: str
    expression: str

    def to_abi(self) -> Tuple[str, str, str]:
        return (self.interpreter, self.store, self.expression)


@dataclass(frozen=True)
class Order:
    """A resting order as stored on the orderbook."""
    owner: str
    handle_io: bool
    evaluable: Evaluable
    valid_inputs: Tuple[IO, ...]
    valid_outputs: Tuple[IO, ...]

    def to_abi(self) -> Tuple[Any, ...]:
        return (
            self.owner,
            self.handle_io,
            self.evaluable.to_abi(),
            [io.to_abi() for io in self.valid_inputs],
            [io.to_abi() for io in self.valid_outputs],
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        evaluable = data["evaluable"]
        return cls(
            owner=data["owner"],
            handle_io=bool(data.get("handleIO", False)),
            evaluable=Evaluable(
                interpreter=evaluable["interpreter"],
                store=evaluable["store"],
                expression=evaluable["expression"],
            ),
            valid_inputs=tuple(
                IO(io["token"], int(io["decimals"]), int(io["vaultId"])) for io in data["validInputs"]
            ),
            valid_outputs=tuple(
                IO(io["token"], int(io["decimals"]), int(io["vaultId"])) for io in data["validOutputs"]
            ),
        )


@dataclass(frozen=True)
class TakeOrder:
    """One order leg of a settlement.

    Carries the resting order, the input/output vault slots it trades
    through and its latest quote. Both ``ratio`` and ``max_output`` are
    18 decimals fixed point.
    """
    id: str
    order: Order
    input_io_index: int
    output_io_index: int
    ratio: int  # minimum acceptable output/input price
    max_output: int  # maximum fillable output of the order

    def to_abi(self) -> Tuple[Any, ...]:
        # signed context is always empty for the bot's takes
        return (self.order.to_abi(), self.input_io_index, self.output_io_index, [])

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TakeOrder":
        take_order = data["takeOrder"]
        quote = data["quote"]
        return cls(
            id=data["id"],
            order=Order.from_dict(take_order["order"]),
            input_io_index=int(take_order["inputIOIndex"]),
            output_io_index=int(take_order["outputIOIndex"]),
            ratio=int(quote["ratio"]),
            max_output=int(quote["maxOutput"]),
        )


@dataclass(frozen=True)
class OrderPairObject:
    """
    Settlement request for one token pair on one orderbook.

    The orders of the pair buy ``buy_token`` and sell ``sell_token``. The
    leg tuple holds more than one copy of the same legs only when the
    request has been escalated by the retry loop.
    """
    orderbook: str
    buy_token: str
    buy_token_symbol: str
    buy_token_decimals: int
    sell_token: str
    sell_token_symbol: str
    sell_token_decimals: int
    take_orders: Tuple[TakeOrder, ...] = field(default_factory=tuple)
    vault_balance: Optional[int] = None  # explicit size cap, in sell token decimals
    known_gas: Optional[int] = None  # skips the unguarded gas estimation when set

    @property
    def pair(self) -> str:
        return f"{self.buy_token_symbol}/{self.sell_token_symbol}"

    def available_size(self) -> int:
        """
        Largest size the request can be settled for.

        Returns:
            The explicit vault balance cap if set, otherwise the sum of the
            legs' max outputs, in sell token decimals
        """
        if self.vault_balance is not None:
            return self.vault_balance
        total = sum(take_order.max_output for take_order in self.take_orders)
        return from_fixed18(total, self.sell_token_decimals)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], default_orderbook: Optional[str] = None) -> "OrderPairObject":
        vault_balance = data.get("vaultBalance")
        orderbook = data.get("orderbook") or default_orderbook
        if not orderbook:
            raise KeyError("orderbook")
        return cls(
            orderbook=orderbook,
            buy_token=data["buyToken"],
            buy_token_symbol=data["buyTokenSymbol"],
            buy_token_decimals=int(data["buyTokenDecimals"]),
            sell_token=data["sellToken"],
            sell_token_symbol=data["sellTokenSymbol"],
            sell_token_decimals=int(data["sellTokenDecimals"]),
            take_orders=tuple(TakeOrder.from_dict(v) for v in data["takeOrders"]),
            vault_balance=int(vault_balance) if vault_balance is not None else None,
        )


@dataclass(frozen=True)
class TakeOrdersConfig:
    """Arguments of a takeOrders call: input bounds, IO ratio cap, legs and exchange data."""
    minimum_input: int
    maximum_input: int
    maximum_io_ratio: int
    orders: Tuple[TakeOrder, ...]
    data: bytes = b""

    def to_abi(self) -> Tuple[Any, ...]:
        return (
            self.minimum_input,
            self.maximum_input,
            self.maximum_io_ratio,
            [take_order.to_abi() for take_order in self.orders],
            self.data,
        )


@dataclass
class RawTx:
    """Settlement transaction ready for simulation or submission."""
    data: str
    to: str
    gas_price: int
    gas_limit: Optional[int] = None

    def to_call_params(self, sender: Optional[str] = None) -> Dict[str, str]:
        """
        Render the transaction as JSON-RPC call params (hex quantities).

        Args:
            sender: Optional "from" address for the simulation

        Returns:
            Dict suitable as the first param of eth_estimateGas
        """
        params = {
            "to": self.to,
            "data": self.data,
            "gasPrice": hex(self.gas_price),
        }
        if self.gas_limit is not None:
            params["gas"] = hex(self.gas_limit)
        if sender:
            params["from"] = sender
        return params


def encode_arb(config: TakeOrdersConfig, minimum_sender_output: int) -> str:
    """Encode an arb(takeOrdersConfig, minimumSenderOutput) call as 0x-prefixed calldata."""
    args = encode([TAKE_ORDERS_CONFIG_TUPLE, "uint256"], [config.to_abi(), minimum_sender_output])
    return "0x" + (function_selector(ARB_SIGNATURE) + args).hex()


def encode_take_orders(config: TakeOrdersConfig) -> bytes:
    """Encode a takeOrders2(takeOrdersConfig) call as raw calldata bytes."""
    return function_selector(TAKE_ORDERS_SIGNATURE) + encode([TAKE_ORDERS_CONFIG_TUPLE], [config.to_abi()])


def group_by_orderbook(pairs: List[OrderPairObject]) -> List[List[OrderPairObject]]:
    """Group pairs per orderbook, preserving first-seen orderbook order."""
    grouped: Dict[str, List[OrderPairObject]] = {}
    for pair in pairs:
        grouped.setdefault(pair.orderbook.lower(), []).append(pair)
    return list(grouped.values())

"""
Inter-orderbook opportunity search.

Settles a pair's orders against the opposing orders resting on other
orderbooks. Every candidate orderbook is probed concurrently at the full
available size and the first one that succeeds wins.
"""
import asyncio
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from .dryrun import DryrunHaltReason, DryrunResult, OpportunityFinder
from .settlement import OrderPairObject
from .sources import CounterpartyOrders
from .utils import describe_error, get_terminal_colors, to_json_line

logger = logging.getLogger(__name__)
colors = get_terminal_colors()


class NoCounterpartyError(Exception):
    """No other orderbook has orders for the opposite side of the pair."""


def find_opposing_orders(
    request: OrderPairObject,
    orderbooks_orders: List[List[OrderPairObject]]
) -> List[OrderPairObject]:
    """
    Find the opposing pair on every other orderbook.

    Args:
        request: Settlement request
        orderbooks_orders: Pairs grouped per orderbook

    Returns:
        At most one pair per other orderbook, buying the request's sell token
        and selling its buy token
    """
    opposing = []
    for orderbook_pairs in orderbooks_orders:
        if not orderbook_pairs or orderbook_pairs[0].orderbook.lower() == request.orderbook.lower():
            continue
        match = next(
            (
                pair for pair in orderbook_pairs
                if pair.buy_token.lower() == request.sell_token.lower()
                and pair.sell_token.lower() == request.buy_token.lower()
            ),
            None,
        )
        if match is not None:
            opposing.append(match)
    return opposing


class InterOrderbookFinder:
    """Races a settlement request against the opposing orders of every other orderbook."""

    def __init__(self, finder: OpportunityFinder):
        self.finder = finder

    async def _probe(
        self,
        request: OrderPairObject,
        counterparty: CounterpartyOrders,
        gas_price: int,
        eth_price: Optional[str]
    ) -> Tuple[str, DryrunResult]:
        result = await self.finder.dryrun(
            request, counterparty, gas_price, eth_price, request.available_size()
        )
        return counterparty.orderbook, result

    async def _wallet_balance(self) -> Optional[int]:
        try:
            return await self.finder.chain_client.get_balance()
        except Exception as e:
            logger.warning(f"Could not read wallet balance: {describe_error(e)}")
            return None

    async def find_opp(
        self,
        request: OrderPairObject,
        orderbooks_orders: List[List[OrderPairObject]],
        gas_price: int,
        eth_price: Optional[str],
        known_gas: Optional[int] = None
    ) -> DryrunResult:
        """
        Find an opportunity against any other orderbook.

        Args:
            request: Settlement request
            orderbooks_orders: Pairs grouped per orderbook
            gas_price: Gas price in wei
            eth_price: Price of one native token in the buy token
            known_gas: Gas of a previous estimation, skips the unguarded simulation

        Returns:
            The first successful probe, otherwise NoWalletFund if any candidate
            reported it, else NoOpportunity with every candidate's attributes
            under "againstOrderbooks"

        Raises:
            NoCounterpartyError: If no other orderbook has opposing orders
        """
        counterparties = [CounterpartyOrders(orders) for orders in find_opposing_orders(request, orderbooks_orders)]
        if not counterparties:
            raise NoCounterpartyError(f"no opposing orders for {request.pair} on other orderbooks")

        if known_gas is not None:
            request = replace(request, known_gas=known_gas)

        tasks = [
            asyncio.create_task(self._probe(request, counterparty, gas_price, eth_price))
            for counterparty in counterparties
        ]
        failures: Dict[str, DryrunResult] = {}
        try:
            for next_done in asyncio.as_completed(tasks):
                orderbook, result = await next_done
                if result.is_success:
                    logger.debug(f"{request.pair}: found opportunity against {colors['CYAN']}{orderbook}{colors['RESET']}")
                    return result
                failures[orderbook] = result
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        ordered = [failures[counterparty.orderbook] for counterparty in counterparties]
        for result in ordered:
            if result.reason == DryrunHaltReason.NO_WALLET_FUND:
                attributes = dict(result.span_attributes)
                balance = await self._wallet_balance()
                if balance is not None:
                    attributes["currentWalletBalance"] = str(balance)
                return DryrunResult(reason=DryrunHaltReason.NO_WALLET_FUND, span_attributes=attributes)

        against_orderbooks = {
            counterparty.orderbook: result.span_attributes
            for counterparty, result in zip(counterparties, ordered)
        }
        return DryrunResult(
            reason=DryrunHaltReason.NO_OPPORTUNITY,
            span_attributes={"againstOrderbooks": to_json_line(against_orderbooks)},
        )

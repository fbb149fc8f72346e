"""
Opportunity search for one settlement request.

Probes a candidate size by simulating the arb() transaction twice (once
unguarded to learn the gas, once with the minimum profit guard), binary
searches the largest profitable size within a probe budget, and escalates
the request with more copies of its legs when nothing profitable is found.
"""
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from .chain_client import ChainClient, SimulationError
from .config import ArbConfig
from .settlement import MAX_UINT256, OrderPairObject, RawTx, TakeOrdersConfig, encode_arb
from .sources import CounterpartySource
from .utils import describe_error, format_units, get_terminal_colors, parse_units, to_fixed18, to_json_line

logger = logging.getLogger(__name__)
colors = get_terminal_colors()

MAX_RETRIES = 3


class DryrunHaltReason(Enum):
    """Why a probe or a search produced no opportunity."""
    NO_OPPORTUNITY = 1  # retriable at a different size
    NO_WALLET_FUND = 2  # the bot's wallet can't pay for gas, fatal
    NO_ROUTE = 3  # the source has no liquidity for the pair


@dataclass
class Opportunity:
    """A settlement transaction that simulated successfully with its profit guard."""
    raw_tx: RawTx
    maximum_input: int  # size, in sell token decimals
    gas_estimate: int  # unguarded estimate before headroom, reusable as known gas
    gas_cost_in_token: int  # in buy token decimals
    take_orders_config: TakeOrdersConfig
    price: int  # implied buy/sell price, 18 decimals fixed point
    route_visual: List[str]
    opp_block_number: int
    request: OrderPairObject


@dataclass
class DryrunResult:
    """Outcome of a probe or a search: an opportunity, or a halt reason."""
    value: Optional[Opportunity] = None
    reason: Optional[DryrunHaltReason] = None
    span_attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.value is not None


@dataclass
class SearchState:
    """Binary search bracket and bookkeeping of one find_opp() call."""
    lo: int
    hi: int
    best_success: Optional[DryrunResult] = None
    hops_used: int = 0
    saw_any_route: bool = False
    hop_log: List[str] = field(default_factory=list)


class OpportunityFinder:
    """Sizes and validates settlement transactions against a liquidity source."""

    def __init__(self, chain_client: ChainClient, config: ArbConfig):
        self.chain_client = chain_client
        self.config = config

    def _halt(self, attributes: Dict[str, Any], error: Exception) -> DryrunResult:
        attributes["error"] = describe_error(error)
        if isinstance(error, SimulationError) and error.is_insufficient_funds:
            reason = DryrunHaltReason.NO_WALLET_FUND
        else:
            reason = DryrunHaltReason.NO_OPPORTUNITY
        return DryrunResult(reason=reason, span_attributes=attributes)

    async def _simulate(self, raw_tx: RawTx, attributes: Dict[str, Any], known_gas: Optional[int] = None) -> int:
        block_number = await self.chain_client.get_block_number()
        attributes["blockNumber"] = block_number
        if known_gas is not None:
            return known_gas
        return await self.chain_client.estimate_gas(raw_tx)

    async def _l1_fee(self, request: OrderPairObject, raw_tx: RawTx) -> int:
        # An unreadable L1 fee counts as 0
        try:
            return await self.chain_client.get_l1_fee(raw_tx.data)
        except SimulationError as e:
            logger.warning(f"{request.pair}: could not read L1 fee, pricing L2 gas only: {e}")
            return 0

    async def dryrun(
        self,
        request: OrderPairObject,
        source: CounterpartySource,
        gas_price: int,
        eth_price: Optional[str],
        maximum_input: int
    ) -> DryrunResult:
        """
        Probe one candidate size.

        Args:
            request: Settlement request
            source: Liquidity to settle against
            gas_price: Gas price in wei
            eth_price: Price of one native token in the buy token (decimal string),
                only needed when gas coverage is not 0
            maximum_input: Candidate size, in sell token decimals

        Returns:
            DryrunResult with the opportunity on success, otherwise a halt reason.
            Attributes hold maxInput, marketPrice, route, blockNumber and error,
            in that order, for the fields that were reached.
        """
        attributes: Dict[str, Any] = {"maxInput": str(maximum_input)}

        try:
            quote = await source.quote_at(request, maximum_input)
        except Exception as e:
            logger.warning(f"{request.pair}: quote at {maximum_input} failed: {describe_error(e)}")
            attributes["route"] = "no-way"
            attributes["error"] = describe_error(e)
            return DryrunResult(reason=DryrunHaltReason.NO_ROUTE, span_attributes=attributes)
        if quote is None:
            attributes["route"] = "no-way"
            return DryrunResult(reason=DryrunHaltReason.NO_ROUTE, span_attributes=attributes)

        maximum_input_fixed = to_fixed18(maximum_input, request.sell_token_decimals)
        price = (
            to_fixed18(quote.amount_out, request.buy_token_decimals) * 10 ** 18 // maximum_input_fixed
            if maximum_input_fixed else 0
        )
        route_visual = source.visualize(quote)
        attributes["marketPrice"] = format_units(price)
        attributes["route"] = route_visual

        take_orders_config = TakeOrdersConfig(
            minimum_input=1,
            maximum_input=maximum_input,
            maximum_io_ratio=MAX_UINT256 if self.config.max_ratio else price,
            orders=request.take_orders,
            data=source.exchange_data(request, quote),
        )
        raw_tx = RawTx(
            data=encode_arb(take_orders_config, 0),
            to=self.config.arb_address,
            gas_price=gas_price,
        )

        coverage = self.config.gas_coverage_percentage
        # With 0 coverage the unguarded pass is the only simulation, so it always runs
        known_gas = request.known_gas if coverage != 0 else None

        # First pass without a profit guard to learn the gas
        try:
            gas_estimate = await self._simulate(raw_tx, attributes, known_gas)
        except Exception as e:
            return self._halt(attributes, e)

        gas_limit = gas_estimate * self.config.gas_limit_headroom // 100
        raw_tx.gas_limit = gas_limit
        gas_cost = gas_limit * gas_price
        if self.config.is_special_l2:
            gas_cost += await self._l1_fee(request, raw_tx)
        eth_price_fixed = parse_units(eth_price) if eth_price else 0
        gas_cost_in_token = eth_price_fixed * gas_cost // 10 ** (36 - request.buy_token_decimals)

        if coverage != 0:
            # Second pass with the profit guard, 0 coverage means the first pass already was the guarded one
            guard = gas_cost_in_token * coverage * self.config.guard_headroom // 10000
            raw_tx.data = encode_arb(take_orders_config, guard)
            try:
                await self._simulate(raw_tx, attributes)
            except Exception as e:
                return self._halt(attributes, e)
            raw_tx.data = encode_arb(take_orders_config, gas_cost_in_token * coverage // 100)

        block_number = attributes["blockNumber"]
        return DryrunResult(
            value=Opportunity(
                raw_tx=raw_tx,
                maximum_input=maximum_input,
                gas_estimate=gas_estimate,
                gas_cost_in_token=gas_cost_in_token,
                take_orders_config=take_orders_config,
                price=price,
                route_visual=route_visual,
                opp_block_number=block_number,
                request=request,
            ),
            span_attributes={"oppBlockNumber": block_number},
        )

    async def find_opp(
        self,
        request: OrderPairObject,
        source: CounterpartySource,
        gas_price: int,
        eth_price: Optional[str],
        hops: Optional[int] = None
    ) -> DryrunResult:
        """
        Binary search the largest size that probes successfully.

        The first probe is the full available size. If it fails, the
        bracket [lo, hi] is bisected until the probe budget is spent or the
        bracket is down to one unit.

        Args:
            request: Settlement request
            source: Liquidity to settle against
            gas_price: Gas price in wei
            eth_price: Price of one native token in the buy token
            hops: Probe budget (defaults to config.hops)

        Returns:
            The largest successful probe, or NoWalletFund, NoOpportunity or
            NoRoute with the hop log under "hops"
        """
        hops = hops or self.config.hops
        state = SearchState(lo=0, hi=request.available_size())

        while state.hops_used < hops:
            if state.hops_used == 0:
                size = state.hi
            elif state.hi - state.lo > 1:
                size = (state.lo + state.hi) // 2
            else:
                break

            outcome = await self.dryrun(request, source, gas_price, eth_price, size)
            state.hops_used += 1

            if outcome.is_success:
                logger.debug(
                    f"{request.pair} hop {state.hops_used}: {colors['GREEN']}{size}{colors['RESET']} succeeded"
                )
                if state.hops_used == 1:
                    return outcome
                state.best_success = outcome
                state.lo = size
                continue

            if outcome.reason == DryrunHaltReason.NO_WALLET_FUND:
                attributes = {"hops": state.hop_log} if state.hop_log else {}
                return DryrunResult(reason=DryrunHaltReason.NO_WALLET_FUND, span_attributes=attributes)

            state.saw_any_route |= outcome.reason != DryrunHaltReason.NO_ROUTE
            state.hop_log.append(to_json_line(outcome.span_attributes))
            state.hi = size
            logger.debug(
                f"{colors['DIM']}{request.pair} hop {state.hops_used}: {size} failed "
                f"({outcome.reason.name}){colors['RESET']}"
            )

        if state.best_success is not None:
            return state.best_success
        reason = DryrunHaltReason.NO_OPPORTUNITY if state.saw_any_route else DryrunHaltReason.NO_ROUTE
        return DryrunResult(reason=reason, span_attributes={"hops": state.hop_log})

    async def find_opp_with_retries(
        self,
        request: OrderPairObject,
        source: CounterpartySource,
        gas_price: int,
        eth_price: Optional[str],
        retries: Optional[int] = None
    ) -> DryrunResult:
        """
        Search with escalation.

        Round k runs find_opp() with k copies of the request's legs, sized to
        round 1's available size. Only NoOpportunity escalates to the next
        round.

        Args:
            request: Settlement request
            source: Liquidity to settle against
            gas_price: Gas price in wei
            eth_price: Price of one native token in the buy token
            retries: Number of rounds, clamped to [1, 3] (defaults to config.retries)

        Returns:
            The first success, or the last round's failure
        """
        retries = max(1, min(retries or self.config.retries, MAX_RETRIES))
        available = request.available_size()

        result = DryrunResult(reason=DryrunHaltReason.NO_ROUTE)
        for round_number in range(1, retries + 1):
            if round_number == 1:
                round_request = request
            else:
                round_request = replace(
                    request,
                    take_orders=request.take_orders * round_number,
                    vault_balance=available,
                )

            result = await self.find_opp(round_request, source, gas_price, eth_price)
            if result.is_success or result.reason != DryrunHaltReason.NO_OPPORTUNITY:
                return result
            if round_number < retries:
                logger.debug(
                    f"{colors['DIM']}{request.pair}: no opportunity in round {round_number}, "
                    f"retrying with {round_number + 1}x legs{colors['RESET']}"
                )
        return result

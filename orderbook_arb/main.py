"""
Main entry point for the orderbook arbitrage bot.
"""
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .chain_client import ChainClient
from .config import ArbConfig, load_config
from .dryrun import DryrunHaltReason, DryrunResult, OpportunityFinder
from .inter_orderbook import InterOrderbookFinder, NoCounterpartyError
from .route_client import PriceOracle, RouteClient
from .settlement import OrderPairObject, group_by_orderbook
from .sources import RouteSource
from .utils import describe_error, format_units, get_terminal_colors

logger = logging.getLogger(__name__)
colors = get_terminal_colors()

MODES = ('route', 'inter-orderbook')


def setup_logging(level: int = logging.INFO, log_file: str = 'arb_bot.log'):
    """Log to stdout and to a file."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ]
    )


def load_orders(path: Path, default_orderbook: Optional[str] = None) -> List[OrderPairObject]:
    """
    Load pre-quoted order pairs from a JSON file.

    Args:
        path: JSON file holding a list of pairs
        default_orderbook: Orderbook of the pairs that don't name one

    Returns:
        Parsed settlement requests

    Raises:
        ValueError: If the file is not a list of pairs or a pair is malformed
    """
    with open(path, 'r') as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of order pairs")
    try:
        return [OrderPairObject.from_dict(item, default_orderbook) for item in data]
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Malformed order pair in {path}: {e}") from e


async def log_outcome(
    request: OrderPairObject,
    result: DryrunResult,
    chain_client: ChainClient,
    native_symbol: str = "WETH"
):
    """Log a search outcome with the severity its halt reason calls for."""
    if result.is_success:
        opp = result.value
        logger.info(
            f"{colors['CYAN']}{request.pair}{colors['RESET']}: opportunity at block "
            f"{colors['GREEN']}{opp.opp_block_number}{colors['RESET']}, "
            f"size={colors['GREEN']}{format_units(opp.maximum_input, request.sell_token_decimals)}{colors['RESET']} "
            f"{request.sell_token_symbol}, price={colors['YELLOW']}{format_units(opp.price)}{colors['RESET']}, "
            f"gas cost={colors['YELLOW']}{format_units(opp.gas_cost_in_token, request.buy_token_decimals)}"
            f"{colors['RESET']} {request.buy_token_symbol}"
        )
        for line in opp.route_visual:
            logger.info(f"  {colors['CYAN']}{line}{colors['RESET']}")
        logger.info(f"Transaction: {json.dumps(opp.raw_tx.to_call_params(chain_client.sender))}")
        return

    if result.reason == DryrunHaltReason.NO_WALLET_FUND:
        balance = result.span_attributes.get("currentWalletBalance")
        try:
            if balance is None:
                balance = await chain_client.get_balance()
            balance_str = f"{format_units(int(balance))} {native_symbol}"
        except Exception as e:
            balance_str = f"unknown ({e})"
        logger.error(
            f"{colors['RED']}{request.pair}: wallet can't pay for gas, "
            f"current balance {balance_str}{colors['RESET']}"
        )
        return

    logger.info(
        f"{colors['DIM']}{request.pair}: {result.reason.name.lower()} "
        f"{json.dumps(result.span_attributes)}{colors['RESET']}"
    )


def gas_key(request: OrderPairObject) -> str:
    """Key under which a pair's gas estimate is remembered between rounds."""
    return f"{request.orderbook.lower()}:{request.buy_token.lower()}:{request.sell_token.lower()}"


async def process_pair(
    request: OrderPairObject,
    config: ArbConfig,
    finder: OpportunityFinder,
    oracle: PriceOracle,
    gas_price: int,
    source: Optional[RouteSource] = None,
    inter_finder: Optional[InterOrderbookFinder] = None,
    orderbooks_orders: Optional[List[List[OrderPairObject]]] = None,
    known_gas: Optional[int] = None
) -> Optional[DryrunResult]:
    """
    Run the opportunity search for one pair.

    Uses the route source when given, otherwise races the pair against the
    other orderbooks, reusing ``known_gas`` from an earlier round.

    Returns:
        The search result, or None if the pair was skipped
    """
    eth_price = await oracle.native_to_token_price(request.buy_token, request.buy_token_decimals)
    if eth_price is None and config.gas_coverage_percentage > 0:
        logger.warning(f"{request.pair}: can not get native token price, skipping...")
        return None

    if source is not None:
        return await finder.find_opp_with_retries(request, source, gas_price, eth_price)

    try:
        return await inter_finder.find_opp(
            request, orderbooks_orders or [], gas_price, eth_price, known_gas=known_gas
        )
    except NoCounterpartyError as e:
        logger.debug(f"{colors['DIM']}{e}{colors['RESET']}")
        return None


async def run_round(
    pairs: List[OrderPairObject],
    config: ArbConfig,
    chain_client: ChainClient,
    finder: OpportunityFinder,
    oracle: PriceOracle,
    mode: str = 'route',
    source: Optional[RouteSource] = None,
    known_gases: Optional[Dict[str, int]] = None
) -> List[Optional[DryrunResult]]:
    """
    Search every pair concurrently and log the outcomes.

    The gas price is read once per round and shared by all pairs. A pair
    whose search raises is logged and reported as None without affecting
    the others.

    Args:
        known_gases: Gas estimates of earlier inter-orderbook opportunities,
            updated with this round's successes
    """
    gas_price = await chain_client.get_gas_price()
    logger.info(f"Gas price: {colors['GREEN']}{gas_price}{colors['RESET']} wei, {len(pairs)} pairs")

    if known_gases is None:
        known_gases = {}
    inter_finder = None
    orderbooks_orders = None
    if mode == 'inter-orderbook':
        inter_finder = InterOrderbookFinder(finder)
        orderbooks_orders = group_by_orderbook(pairs)
        source = None

    outcomes = await asyncio.gather(*[
        process_pair(
            request, config, finder, oracle, gas_price,
            source=source, inter_finder=inter_finder, orderbooks_orders=orderbooks_orders,
            known_gas=known_gases.get(gas_key(request)) if inter_finder is not None else None
        )
        for request in pairs
    ], return_exceptions=True)

    results: List[Optional[DryrunResult]] = []
    for request, outcome in zip(pairs, outcomes):
        if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, Exception):
            logger.error(f"{colors['RED']}{request.pair}: search failed: {describe_error(outcome)}{colors['RESET']}")
            results.append(None)
            continue
        results.append(outcome)
        if outcome is None:
            continue
        if outcome.is_success and inter_finder is not None:
            known_gases[gas_key(request)] = outcome.value.gas_estimate
        await log_outcome(request, outcome, chain_client, config.native_token.symbol)
    return results


async def main(
    mode: str = 'route',
    orders_path: Optional[str] = None,
    rounds: int = 1,
    interval: float = 5.0
):
    """
    Main function.

    Args:
        mode: 'route' or 'inter-orderbook'
        orders_path: JSON file with the order pairs, re-read every round
        rounds: Number of rounds, 0 runs until interrupted
        interval: Seconds between rounds
    """
    setup_logging()
    if mode not in MODES:
        logger.error(f"Unknown mode: {mode}. Use: {', '.join(MODES)}")
        return

    logger.info(f"Starting orderbook arbitrage bot, mode: {mode}")
    config = load_config()
    orders_file = Path(orders_path or 'orders.json')

    chain_client = ChainClient(
        config.rpc_url,
        sender=config.sender_address,
        fallback_rpc_url=config.fallback_rpc_url,
        timeout=config.timeout,
        gas_price_multiplier=config.gas_price_multiplier
    )
    route_client = RouteClient(config.route_api_url, api_key=config.route_api_key, timeout=config.timeout)
    oracle = PriceOracle(route_client, config.native_token.address, config.native_token.decimals)
    finder = OpportunityFinder(chain_client, config)
    known_gases: Dict[str, int] = {}

    try:
        chain_id = await chain_client.get_chain_id()
        if chain_id != config.chain_id:
            logger.error(f"RPC serves chain {chain_id}, configured chain is {config.chain_id}")
            return

        round_number = 0
        while rounds == 0 or round_number < rounds:
            if round_number > 0:
                await asyncio.sleep(interval)
            round_number += 1

            pairs = load_orders(orders_file, default_orderbook=config.orderbook_address or None)
            if not pairs:
                logger.info("No order pairs to process")
                continue
            await run_round(
                pairs, config, chain_client, finder, oracle,
                mode=mode, source=RouteSource(route_client), known_gases=known_gases
            )
    finally:
        await route_client.close()
        await chain_client.close()
        logger.info("Bot stopped")

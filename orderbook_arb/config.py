"""
Bot configuration: .env and config.json loading and validation.
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import dotenv

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).parent.parent

# Wrapped native token of ethereum mainnet
DEFAULT_NATIVE_TOKEN = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"


@dataclass
class NativeToken:
    """Wrapped native token used to price gas in other tokens."""
    address: str = DEFAULT_NATIVE_TOKEN
    decimals: int = 18
    symbol: str = "WETH"  # shown next to wallet balances


@dataclass
class ArbConfig:
    """Arbitrage search configuration.

    Percentages are integers where 100 means 1x.
    """
    arb_address: str
    rpc_url: str
    route_api_url: str = ""
    orderbook_address: str = ""  # default orderbook of order pairs that don't name one
    fallback_rpc_url: Optional[str] = None
    route_api_key: Optional[str] = None
    sender_address: Optional[str] = None  # "from" of simulations, the bot's wallet
    chain_id: int = 1  # the RPC must serve this chain
    is_special_l2: bool = False  # OP-stack chain, gas cost includes the L1 data fee
    native_token: NativeToken = field(default_factory=NativeToken)
    gas_coverage_percentage: int = 100  # share of gas cost the trade must pay back
    hops: int = 11  # binary search probe budget
    retries: int = 1  # escalation rounds
    gas_limit_headroom: int = 103  # applied to the gas estimate
    guard_headroom: int = 100  # applied to the profit guard on the guarded simulation
    gas_price_multiplier: int = 100
    max_ratio: bool = True  # take orders at any IO ratio instead of the implied price
    timeout: float = 10.0  # seconds, per RPC/HTTP request

    def __post_init__(self):
        """Validate configuration."""
        if not self.arb_address:
            raise ValueError("arb_address is required")
        if not self.rpc_url:
            raise ValueError("rpc_url is required")
        if self.gas_coverage_percentage < 0:
            raise ValueError("gas_coverage_percentage must be >= 0")
        if self.hops < 1:
            raise ValueError("hops must be >= 1")
        if not 1 <= self.retries <= 3:
            raise ValueError("retries must be between 1 and 3")
        if self.gas_limit_headroom < 100:
            raise ValueError("gas_limit_headroom must be >= 100")
        if self.guard_headroom < 100:
            raise ValueError("guard_headroom must be >= 100")
        if self.gas_price_multiplier <= 0:
            raise ValueError("gas_price_multiplier must be > 0")
        if self.chain_id < 1:
            raise ValueError("chain_id must be >= 1")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")


def _parse_bool(value: Union[str, bool]) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _setting(env_name: str, file_config: Dict[str, Any], key: str, default: Any = None) -> Any:
    # env takes precedence, then config.json, then default
    env_value = os.getenv(env_name)
    if env_value is not None and env_value.strip() != "":
        return env_value.strip()
    return file_config.get(key, default)


def load_config(env_path: Optional[Path] = None, config_path: Optional[Path] = None) -> ArbConfig:
    """
    Load configuration from .env and config.json.

    Args:
        env_path: Path of the .env file (defaults to the project root)
        config_path: Path of config.json (defaults to the project root)

    Returns:
        Validated ArbConfig

    Raises:
        ValueError: If a setting is missing, malformed or out of range
    """
    env_path = env_path or PROJECT_ROOT / '.env'
    if env_path.exists():
        dotenv.load_dotenv(env_path)
    else:
        logger.warning(f".env file not found at {env_path}")

    config_path = config_path or PROJECT_ROOT / 'config.json'
    if config_path.exists():
        with open(config_path, 'r') as f:
            file_config = json.load(f)
    else:
        logger.warning(f"config.json not found at {config_path}")
        file_config = {}

    native = file_config.get('native_token', {})
    native_token = NativeToken(
        address=_setting('NATIVE_TOKEN_ADDRESS', native, 'address', DEFAULT_NATIVE_TOKEN),
        decimals=int(_setting('NATIVE_TOKEN_DECIMALS', native, 'decimals', 18)),
        symbol=_setting('NATIVE_TOKEN_SYMBOL', native, 'symbol', 'WETH'),
    )

    try:
        return ArbConfig(
            arb_address=_setting('ARB_ADDRESS', file_config, 'arb_address', ''),
            rpc_url=_setting('RPC_URL', file_config, 'rpc_url', ''),
            route_api_url=_setting('ROUTE_API_URL', file_config, 'route_api_url', ''),
            orderbook_address=_setting('ORDERBOOK_ADDRESS', file_config, 'orderbook_address', ''),
            fallback_rpc_url=_setting('FALLBACK_RPC_URL', file_config, 'fallback_rpc_url'),
            route_api_key=_setting('ROUTE_API_KEY', file_config, 'route_api_key'),
            sender_address=_setting('BOT_ADDRESS', file_config, 'sender_address'),
            chain_id=int(_setting('CHAIN_ID', file_config, 'chain_id', 1)),
            is_special_l2=_parse_bool(_setting('IS_SPECIAL_L2', file_config, 'is_special_l2', False)),
            native_token=native_token,
            gas_coverage_percentage=int(_setting('GAS_COVER', file_config, 'gas_coverage_percentage', 100)),
            hops=int(_setting('HOPS', file_config, 'hops', 11)),
            retries=int(_setting('RETRIES', file_config, 'retries', 1)),
            gas_limit_headroom=int(_setting('GAS_LIMIT_HEADROOM', file_config, 'gas_limit_headroom', 103)),
            guard_headroom=int(_setting('GUARD_HEADROOM', file_config, 'guard_headroom', 100)),
            gas_price_multiplier=int(_setting('GAS_PRICE_MULTIPLIER', file_config, 'gas_price_multiplier', 100)),
            max_ratio=_parse_bool(_setting('MAX_RATIO', file_config, 'max_ratio', True)),
            timeout=float(_setting('TIMEOUT', file_config, 'timeout', 10.0)),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid configuration: {e}") from e

"""
Utility functions for the orderbook arbitrage bot.
"""
import json
import sys
from typing import Any, Dict


def get_terminal_colors() -> Dict[str, str]:
    """
    Get ANSI color codes for terminal output.

    Returns empty strings if output is not a TTY (e.g., redirected to file).
    This ensures log files remain clean without ANSI escape codes.

    Returns:
        Dictionary with color codes: GREEN, CYAN, YELLOW, RED, DIM, RESET
    """
    use_color = sys.stdout.isatty()
    return {
        'GREEN': '\033[92m' if use_color else '',   # Neutral numeric values (sizes, gas, block numbers)
        'CYAN': '\033[96m' if use_color else '',    # Identifiers and routes (pairs, orderbooks, route legs)
        'YELLOW': '\033[93m' if use_color else '',  # Key economic signals (prices, gas cost in token)
        'RED': '\033[91m' if use_color else '',     # Errors, failures, no wallet fund
        'DIM': '\033[90m' if use_color else '',     # Secondary / service messages
        'RESET': '\033[0m' if use_color else ''     # Reset color
    }


def parse_units(value: str, decimals: int = 18) -> int:
    """
    Parse a decimal string into an integer with the given decimals point.

    Excess fractional digits are truncated rather than rejected, since
    prices coming from the route API routinely carry more precision than
    the target token.

    Args:
        value: Decimal string, e.g. "0.5" or "1234"
        decimals: Decimals point of the result

    Returns:
        Integer amount scaled by 10**decimals
    """
    value = str(value).strip()
    negative = value.startswith('-')
    if negative:
        value = value[1:]

    whole, _, fraction = value.partition('.')
    if not whole and not fraction:
        raise ValueError(f"invalid decimal string: {value!r}")
    if not (whole or '0').isdigit() or (fraction and not fraction.isdigit()):
        raise ValueError(f"invalid decimal string: {value!r}")

    fraction = fraction[:decimals].ljust(decimals, '0')
    result = int(whole or '0') * 10 ** decimals + int(fraction or '0')
    return -result if negative else result


def format_units(value: int, decimals: int = 18) -> str:
    """Format an integer amount with the given decimals point as a decimal string."""
    sign = '-' if value < 0 else ''
    whole, fraction = divmod(abs(value), 10 ** decimals)
    fraction_str = str(fraction).zfill(decimals).rstrip('0') if decimals else ''
    return f"{sign}{whole}.{fraction_str or '0'}"


def to_fixed18(amount: int, decimals: int) -> int:
    """Convert an amount with `decimals` point to an 18 fixed point amount."""
    if decimals > 18:
        return amount // 10 ** (decimals - 18)
    return amount * 10 ** (18 - decimals)


def from_fixed18(amount: int, decimals: int) -> int:
    """Convert an 18 fixed point amount to an amount with `decimals` point (truncating)."""
    if decimals > 18:
        return amount * 10 ** (decimals - 18)
    return amount // 10 ** (18 - decimals)


def describe_error(error: BaseException) -> str:
    """
    Render an exception as the stable string used in diagnostic attributes.

    Args:
        error: Any exception raised while probing

    Returns:
        The exception message, or its class name if it has none
    """
    message = str(error)
    return message if message else type(error).__name__


def to_json_line(attributes: Dict[str, Any]) -> str:
    """Serialize a diagnostic attribute map as one compact JSON line (insertion order preserved)."""
    return json.dumps(attributes, separators=(',', ':'))

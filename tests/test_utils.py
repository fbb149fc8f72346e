"""
Tests for utils.py
"""
import sys

import pytest
from unittest.mock import patch

from orderbook_arb.chain_client import SimulationError
from orderbook_arb.utils import (
    describe_error,
    format_units,
    from_fixed18,
    get_terminal_colors,
    parse_units,
    to_fixed18,
    to_json_line,
)


class TestUtils:
    """Tests for utility functions."""

    def test_get_terminal_colors_tty(self):
        """Test get_terminal_colors returns color codes when stdout is TTY."""
        with patch.object(sys.stdout, 'isatty', return_value=True):
            colors = get_terminal_colors()
            assert colors['GREEN'] == '\033[92m'
            assert colors['CYAN'] == '\033[96m'
            assert colors['YELLOW'] == '\033[93m'
            assert colors['RED'] == '\033[91m'
            assert colors['RESET'] == '\033[0m'

    def test_get_terminal_colors_no_tty(self):
        """Test get_terminal_colors returns empty strings when stdout is not TTY."""
        with patch.object(sys.stdout, 'isatty', return_value=False):
            colors = get_terminal_colors()
            assert all(value == '' for value in colors.values())

    @pytest.mark.parametrize("value,decimals,expected", [
        ("1", 18, 10 ** 18),
        ("2000", 18, 2000 * 10 ** 18),
        ("0.5", 6, 500_000),
        (".25", 2, 25),
        ("1.23456789", 6, 1_234_567),  # excess precision is truncated
        ("-1.5", 1, -15),
    ])
    def test_parse_units(self, value, decimals, expected):
        assert parse_units(value, decimals) == expected

    @pytest.mark.parametrize("value", ["", "abc", "1.2.3", "1e18"])
    def test_parse_units_invalid(self, value):
        with pytest.raises(ValueError):
            parse_units(value)

    @pytest.mark.parametrize("value,decimals,expected", [
        (10 ** 18, 18, "1.0"),
        (2 * 10 ** 18, 18, "2.0"),
        (1_500_000, 6, "1.5"),
        (1, 18, "0.000000000000000001"),
        (0, 18, "0.0"),
        (-15, 1, "-1.5"),
        (7, 0, "7.0"),
    ])
    def test_format_units(self, value, decimals, expected):
        assert format_units(value, decimals) == expected

    def test_fixed18_conversions(self):
        assert to_fixed18(1_500_000, 6) == 15 * 10 ** 17
        assert from_fixed18(15 * 10 ** 17, 6) == 1_500_000
        assert from_fixed18(1_999_999_999_999, 6) == 1  # truncates
        assert to_fixed18(10 ** 20, 20) == 10 ** 18
        assert from_fixed18(10 ** 18, 20) == 10 ** 20

    def test_describe_error(self):
        assert describe_error(SimulationError(-32000, "execution reverted")) == "-32000: execution reverted"
        assert describe_error(ValueError("bad")) == "bad"
        assert describe_error(TimeoutError()) == "TimeoutError"

    def test_to_json_line_is_compact_and_ordered(self):
        line = to_json_line({"maxInput": "10", "route": "no-way", "blockNumber": 1})
        assert line == '{"maxInput":"10","route":"no-way","blockNumber":1}'

#!/usr/bin/env python3
"""
Simple launcher script for the orderbook arbitrage bot.
"""
import argparse
import sys
from orderbook_arb.main import main, MODES
import asyncio

if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Orderbook Arbitrage Bot')
    parser.add_argument(
        'mode',
        nargs='?',
        default='route',
        choices=MODES,
        help='Counterparty mode: route (default) or inter-orderbook'
    )
    parser.add_argument(
        '--orders',
        default='orders.json',
        help='JSON file with the pre-quoted order pairs (default: orders.json)'
    )
    parser.add_argument(
        '--rounds',
        type=int,
        default=1,
        help='Number of search rounds, 0 runs until interrupted (default: 1)'
    )
    parser.add_argument(
        '--interval',
        type=float,
        default=5.0,
        help='Seconds between rounds (default: 5)'
    )

    args = parser.parse_args()

    try:
        asyncio.run(main(mode=args.mode, orders_path=args.orders, rounds=args.rounds, interval=args.interval))
    except KeyboardInterrupt:
        print("\nBot stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

#!/usr/bin/env python3
"""Operator CLI for the OTC swap engine"""

import argparse
import asyncio
from decimal import Decimal

from otc_swap.config import settings
from otc_swap.core.otc.errors import OtcSwapError
from otc_swap.core.otc.service import OtcSwapService
from otc_swap.db.database import get_database
from otc_swap.logging_config import setup_logging
from otc_swap.providers.coingecko import CoingeckoProvider


def print_config(config):
    """Pretty print the swap config"""
    status = "✅ enabled" if config.get("enabled") else f"❌ disabled ({config.get('error')})"
    print(f"\n📈 OTC Swap: {status}")
    print("=" * 50)
    print(f"Token:     {config.get('token_symbol')} ({config.get('token_mint') or 'mint not set'})")
    print(f"Treasury:  {config.get('treasury_wallet') or 'not set'}")
    if "tier" in config:
        print(f"Tier:      {config['tier']} ({config['tokens_until_next_tier']:,} tokens until next tier)")
        print(f"Price:     ${config['price_usd']:.4f}  /  {config['price_sol']:.9f} SOL")
        print(f"SOL/USD:   {config['sol_price_usd']:,.2f}")
    supply = config.get("available_supply")
    print(f"Supply:    {supply:,}" if supply is not None else "Supply:    unknown")

    stats = config.get("stats", {})
    print(f"\nCompleted swaps: {stats.get('total_swaps', 0):,}")
    print(f"Tokens sold:     {stats.get('total_tokens_sold', 0):,}")
    print(f"SOL received:    {stats.get('total_sol_received', 0):.9f}")


def print_history(wallet, swaps):
    if not swaps:
        print(f"No swaps for {wallet}")
        return
    print(f"\n📜 Swaps for {wallet}")
    print("-" * 50)
    for swap in swaps:
        print(
            f"{swap['created_at'][:19]}  {swap['status']:<10} {swap['token_amount']:>10,} tokens  "
            f"{swap['sol_cost']:.9f} SOL  {swap.get('tx_signature') or ''}"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="OTC Swap operator CLI")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("stats", help="Show curve position, supply and totals")

    history_parser = subparsers.add_parser("history", help="List a buyer's swaps")
    history_parser.add_argument("wallet", help="Buyer wallet address")

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete pending swaps past their quote window")
    cleanup_parser.add_argument("--max-age", type=int, default=None, help="Age in seconds, never below the quote TTL (default: quote TTL)")

    reconcile_parser = subparsers.add_parser("reconcile", help="Settle submitted swaps whose confirmation timed out")
    reconcile_parser.add_argument("--min-age", type=int, default=0, help="Only swaps older than this many seconds")
    reconcile_parser.add_argument("--limit", type=int, default=100, help="Maximum swaps to check")

    price_parser = subparsers.add_parser("set-sol-price", help="Store the fallback SOL/USD rate")
    price_parser.add_argument("rate", type=Decimal, help="USD per SOL")

    return parser


async def run(args) -> int:
    database = get_database()
    if settings.auto_create_tables:
        await database.create_all()
    price_provider = CoingeckoProvider() if settings.enable_coingecko else None
    service = OtcSwapService.from_settings(settings, database, price_provider=price_provider)

    try:
        if args.command == "stats":
            print_config(await service.get_config())

        elif args.command == "history":
            print_history(args.wallet, await service.get_history(args.wallet))

        elif args.command == "cleanup":
            removed = await service.cleanup_stale_pending(args.max_age)
            print(f"🧹 Removed {removed} stale pending swaps")

        elif args.command == "reconcile":
            summary = await service.reconcile_submitted(args.min_age, args.limit)
            print(
                f"🔁 Checked {summary['checked']}: {summary['completed']} completed, "
                f"{summary['failed']} failed, {summary['unresolved']} still submitted, "
                f"{summary['errors']} errors"
            )

        elif args.command == "set-sol-price":
            rate = await service.set_sol_price(args.rate)
            print(f"💲 Fallback SOL/USD rate set to {rate}")

    except OtcSwapError as e:
        print(f"❌ Error: {e.message}")
        return 1
    finally:
        await service.close()
        await database.dispose()
    return 0


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    setup_logging()
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())

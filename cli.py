#!/usr/bin/env python3
"""
Holder Watch - Command Line Interface

Manual commands for operating and inspecting the tracker:
- Serve: Run the API + Socket.io server
- Fetch: Run the holder provider chain once and print the top holders
- Check: Look up one wallet's standing on a running server
- State: Print counts and list heads from a running server

Usage:
    python cli.py serve                     # Start the server
    python cli.py fetch <mint_or_pool>      # One-shot holder fetch
    python cli.py check <wallet>            # Nice or naughty?
    python cli.py state                     # Counts + top of each list
    python cli.py state --url http://host:3000
"""

import asyncio
import argparse
import os
import sys

from dotenv import load_dotenv

load_dotenv()

DEFAULT_URL = os.getenv("TRACKER_URL", f"http://localhost:{os.getenv('PORT', '3000')}")


class Colors:
    """ANSI color codes for terminal output."""
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def color(text: str, c: str) -> str:
    """Apply color to text."""
    return f"{c}{text}{Colors.ENDC}"


def short(address: str, n: int = 8) -> str:
    if not address or len(address) <= n * 2:
        return address or "-"
    return f"{address[:n]}...{address[-4:]}"


async def get_json(url: str) -> dict:
    """GET a JSON document from a running tracker."""
    import aiohttp

    timeout = aiohttp.ClientTimeout(total=10)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(url) as resp:
            data = await resp.json(content_type=None)
            if resp.status != 200:
                raise RuntimeError(data.get("error", f"HTTP {resp.status}"))
            return data


async def cmd_serve(args):
    """Run the server (same as main.py)."""
    import uvicorn
    from ingestion.config import TrackerConfig
    from main import build_asgi_app

    config = TrackerConfig()
    if args.port:
        config.port = args.port
    if args.mint:
        config.token_mint = args.mint

    server = uvicorn.Server(uvicorn.Config(build_asgi_app(config), host=args.host, port=config.port))
    await server.serve()


async def cmd_fetch(args):
    """Run the provider chain once without touching any server."""
    from ingestion.config import TrackerConfig
    from ingestion.fetcher import HolderFetcher
    from logic.errors import ValidationError, validate_address

    try:
        address = validate_address(args.address, "Mint address")
    except ValidationError as e:
        print(color(f"\n[ERROR] {e}\n", Colors.RED))
        sys.exit(1)

    print(color("\n===========================================", Colors.CYAN))
    print(color("  HOLDER FETCH", Colors.BOLD))
    print(color("===========================================\n", Colors.CYAN))

    async with HolderFetcher(TrackerConfig()) as fetcher:
        result = await fetcher.fetch_holders(address)

    print(f"  Token Mint:      {result.token_mint}")
    if result.pool_address:
        print(f"  Pool Address:    {result.pool_address}")
    print(f"  Provider:        {result.provider or color('none', Colors.RED)}")
    tried = [a.provider if a.ok else f"{a.provider} (failed)" for a in result.attempts]
    print(f"  Attempts:        {', '.join(tried) or '-'}")
    print(f"  Holders:         {color(str(len(result.holders)), Colors.YELLOW)}")

    if result.holders:
        print()
        print("  #    Wallet                                         Balance")
        print("  " + "-" * 66)
        for i, holder in enumerate(result.holders[:args.limit], 1):
            print(f"  {i:<4} {holder.address:<46} {holder.balance:>14,}")

    print(color("\n===========================================\n", Colors.CYAN))


async def cmd_check(args):
    """Look up one wallet on a running tracker."""
    try:
        data = await get_json(f"{args.url}/api/wallet/{args.address}")
    except Exception as e:
        print(color(f"\n[ERROR] {e}\n", Colors.RED))
        sys.exit(1)

    status = data.get("status", "UNKNOWN")
    if status == "NICE":
        badge = color("[NICE]", Colors.GREEN)
    elif status == "NAUGHTY":
        badge = color("[NAUGHTY]", Colors.RED)
    else:
        badge = color("[UNKNOWN]", Colors.YELLOW)

    print(color("\n  Wallet Check", Colors.BOLD))
    print("  " + "-" * 30)
    print(f"  Address:          {data.get('address')}")
    print(f"  Status:           {badge}")
    print(f"  Balance:          {data.get('balance', 0):,}")
    print(f"  Verdict:          {data.get('verdict')}")
    print()


async def cmd_state(args):
    """Print counts and the head of each list from a running tracker."""
    try:
        data = await get_json(f"{args.url}/api/state")
    except Exception as e:
        print(color(f"\n[ERROR] {e}\n", Colors.RED))
        sys.exit(1)

    print(color("\n===========================================", Colors.CYAN))
    print(color("  HOLDER WATCH - STATE", Colors.BOLD))
    print(color("===========================================\n", Colors.CYAN))
    print(f"  Total Holders:   {data.get('totalHolders', 0)}")
    print(f"  Nice:            {color(str(data.get('niceCount', 0)), Colors.GREEN)}")
    print(f"  Naughty:         {color(str(data.get('naughtyCount', 0)), Colors.RED)}")

    nice = data.get("niceList", [])[:args.limit]
    if nice:
        print(color("\n  Nice List", Colors.GREEN))
        print("  " + "-" * 50)
        for entry in nice:
            print(f"  {short(entry['address']):<24} {entry['points']:>10,} pts")

    naughty = data.get("naughtyList", [])[:args.limit]
    if naughty:
        print(color("\n  Naughty List", Colors.RED))
        print("  " + "-" * 50)
        for entry in naughty:
            print(f"  {short(entry['address']):<24} {entry['shame']}")

    activity = data.get("recentActivity", [])[:args.limit]
    if activity:
        print(color("\n  Recent Activity", Colors.YELLOW))
        print("  " + "-" * 50)
        for item in activity:
            kind = color(f"{item['type']:<5}", Colors.GREEN if item["type"] == "BUY" else Colors.RED)
            print(f"  {kind} {short(item['address']):<24} {item['amount']:>14,}")

    print(color("\n===========================================\n", Colors.CYAN))


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Holder Watch CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the tracker server")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--mint", default=None, help="Token to track at startup")

    # Fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Fetch holders once via the provider chain")
    fetch_parser.add_argument("address", help="Token mint or pool address")
    fetch_parser.add_argument("--limit", type=int, default=20)

    # Check command
    check_parser = subparsers.add_parser("check", help="Check a wallet on a running server")
    check_parser.add_argument("address", help="Wallet address")
    check_parser.add_argument("--url", default=DEFAULT_URL)

    # State command
    state_parser = subparsers.add_parser("state", help="Show state of a running server")
    state_parser.add_argument("--url", default=DEFAULT_URL)
    state_parser.add_argument("--limit", type=int, default=10)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    # Route to command handler
    handlers = {
        "serve": cmd_serve,
        "fetch": cmd_fetch,
        "check": cmd_check,
        "state": cmd_state,
    }

    handler = handlers.get(args.command)
    if handler:
        asyncio.run(handler(args))


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Simple CLI for checking bridge transfers locally"""

import argparse
import asyncio
from typing import List, Optional

import httpx

from bridgestep.config import settings
from bridgestep.core.bridge.chain_registry import ChainRegistry
from bridgestep.core.execution.polling import SettlementPoller
from bridgestep.core.recovery.errors import ExecutionError
from bridgestep.logging_config import setup_logging
from bridgestep.providers.transfer_api import TransferApiProvider
from bridgestep.types import StatusResponse


def print_status(status: StatusResponse) -> None:
    """Pretty print a settlement status"""
    icon = {"DONE": "✅", "FAILED": "❌"}.get(status.status, "⏳")
    print(f"\n{icon} Status: {status.status}")
    if status.substatus:
        print(f"Substatus: {status.substatus}")
    if status.substatus_message:
        print(f"  {status.substatus_message}")

    for label, side in (("Sending", status.sending), ("Receiving", status.receiving)):
        if side is None:
            continue
        print(f"\n{label}:")
        print("-" * 50)
        symbol = side.token.symbol if side.token else ""
        print(f"Tx: {side.tx_hash or '-'}")
        if side.tx_link:
            print(f"Link: {side.tx_link}")
        if side.amount:
            print(f"Amount: {side.amount} {symbol}")


async def cli_status(tool: str, from_chain: int, to_chain: int, tx_hash: str) -> None:
    """Single status probe"""
    provider = TransferApiProvider()
    try:
        status = await provider.get_status(tool, from_chain, to_chain, tx_hash)
    except httpx.HTTPError as e:
        print(f"❌ Error: {e}")
        return
    print_status(status)


async def cli_wait(
    tool: str,
    from_chain: int,
    to_chain: int,
    tx_hash: str,
    interval: Optional[float],
    max_duration: Optional[float],
) -> None:
    """Poll until the transfer settles"""
    print(f"🔍 Waiting for {tx_hash} to arrive on chain {to_chain}...")
    poller = SettlementPoller(
        TransferApiProvider(),
        interval_seconds=interval,
        max_duration_seconds=max_duration,
    )
    try:
        status = await poller.wait_for_receiving_transaction(tool, from_chain, to_chain, tx_hash)
    except ExecutionError as e:
        print(f"❌ {e.message} ({e.code.value})")
        return
    print_status(status)


async def cli_chains(refresh: bool) -> None:
    """List chains known to the directory"""
    registry = ChainRegistry(transfer_api=TransferApiProvider() if refresh else None)
    await registry.ensure_loaded()
    for chain in registry.get_supported_chains():
        explorer = chain.block_explorer_urls[0] if chain.block_explorer_urls else "-"
        print(f"{str(chain.id):>8}  {chain.name:<20} {chain.native_token.symbol:<6} {explorer}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bridge step CLI")
    parser.add_argument("--log-level", default=None, help=f"Log level (default: {settings.log_level})")
    subparsers = parser.add_subparsers(dest="command")

    for name, help_text in (("status", "Fetch settlement status once"), ("wait", "Poll until settled")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("tool", help="Bridge tool identifier")
        sub.add_argument("from_chain", type=int, help="Source chain id")
        sub.add_argument("to_chain", type=int, help="Destination chain id")
        sub.add_argument("tx_hash", help="Source transaction hash")
        if name == "wait":
            sub.add_argument("--interval", type=float, help="Seconds between probes")
            sub.add_argument("--max-duration", type=float, help="Give up after this many seconds")

    chains_parser = subparsers.add_parser("chains", help="List supported chains")
    chains_parser.add_argument("--refresh", action="store_true", help="Load the chain list from the transfer API")

    return parser


async def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    setup_logging(args.log_level)
    command = args.command.lower()

    if command == "status":
        await cli_status(args.tool, args.from_chain, args.to_chain, args.tx_hash)

    elif command == "wait":
        if args.max_duration is not None and args.max_duration <= 0:
            raise ValueError("Max duration must be positive")
        await cli_wait(args.tool, args.from_chain, args.to_chain, args.tx_hash, args.interval, args.max_duration)

    elif command == "chains":
        await cli_chains(args.refresh)

    else:
        print(f"❌ Unknown command: {command}")
        parser.print_help()


if __name__ == "__main__":
    asyncio.run(main())

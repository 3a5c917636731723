#!/usr/bin/env python3
"""
Command-line interface for the delivery orders backbone.

Usage:
    uv run python cli.py [command] [options]

Commands:
    serve       Start the API server
    test        Run the test suite
    fee         Look up the delivery fee for a neighborhood
    watch       Follow live order updates from a running server

Examples:
    uv run python cli.py serve --reload
    uv run python cli.py fee "Vila da Saude"
    uv run python cli.py watch --url http://127.0.0.1:8000
"""

import argparse
import asyncio
import logging
import subprocess
import sys


def run_tests(args: list[str]) -> None:
    """Run the test suite."""
    cmd = ["uv", "run", "pytest"] + args
    subprocess.run(cmd)


def run_server(host: str, port: int, reload: bool) -> None:
    """Start the API server."""
    cmd = ["uv", "run", "uvicorn", "api.main:app", f"--host={host}", f"--port={port}"]
    if reload:
        cmd.append("--reload")

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    print(f"Live updates at http://{host}:{port}/api/orders/sse")
    subprocess.run(cmd)


def run_fee(neighborhood: str) -> None:
    """Print the delivery fee for a neighborhood."""
    from shared.config import get_settings
    from shared.delivery_zones import DELIVERY_FEE_WARNING, calculate_delivery_fee

    result = calculate_delivery_fee(neighborhood, get_settings().fallback_delivery_fee)
    if result.is_unlisted:
        print(f"{neighborhood!r} is not in the delivery table")
        print(f"Fallback fee: R$ {result.fee:.2f}")
        print(DELIVERY_FEE_WARNING)
    else:
        print(f"{neighborhood}: R$ {result.fee:.2f} (zone {result.zone_code} - {result.zone_name})")


async def _watch(base_url: str) -> None:
    from order_client.subscriber import OrderUpdatesSubscriber
    from order_client.transport import HttpEventStream

    subscriber = OrderUpdatesSubscriber(
        HttpEventStream(base_url),
        on_connected=lambda: print(f"* connected to {base_url}"),
        on_disconnected=lambda: print("* disconnected, reconnecting..."),
        on_order_created=lambda e: print(f"+ {e.order_id} created ({e.status})"),
        on_order_status_changed=lambda e: print(f"> {e.order_id} {e.previous_status or '?'} -> {e.status}"),
        on_order_assigned=lambda e: print(f"@ {e.order_id} assigned to {e.motoboy_id}"),
    )
    with subscriber:
        # Runs until interrupted
        await asyncio.Event().wait()


def run_watch(base_url: str) -> None:
    """Print live order updates until Ctrl-C."""
    try:
        asyncio.run(_watch(base_url))
    except KeyboardInterrupt:
        print("\nStopped")


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Delivery Orders CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s serve --reload
  %(prog)s test -v
  %(prog)s fee "Vila Mariana"
  %(prog)s watch
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Test command
    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    # Fee command
    fee_parser = subparsers.add_parser("fee", help="Look up a delivery fee")
    fee_parser.add_argument("neighborhood", help="Neighborhood name (case-insensitive)")

    # Watch command
    watch_parser = subparsers.add_parser("watch", help="Follow live order updates")
    watch_parser.add_argument("--url", default=None, help="API base URL (default: ORDERS_BASE_URL)")

    args = parser.parse_args()

    if args.command == "test":
        run_tests(args.pytest_args)
    elif args.command == "serve":
        run_server(args.host, args.port, args.reload)
    elif args.command == "fee":
        run_fee(args.neighborhood)
    elif args.command == "watch":
        from shared.config import get_settings

        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s",
            datefmt="%H:%M:%S",
        )
        run_watch(args.url or get_settings().base_url)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()

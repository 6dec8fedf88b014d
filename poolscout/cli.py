"""Command-line interface for the pool scout."""
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import signal
import sys

from .config import SCORING_PRESETS, AppConfig, load_config
from .logging_setup import configure_logging
from .services import Orchestrator
from .services.orchestrator import format_portfolio_status
from .storage import StateStore


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="poolscout",
        description="Simulated liquidity-pool discovery and yield farming",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--preset",
        default=None,
        choices=sorted(SCORING_PRESETS),
        help="Scoring preset (overrides scoring.preset in config)",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Use the bundled demo pools instead of live data",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("scan", help="Run one discovery cycle and print the results")
    sub.add_parser("report", help="Print the last saved portfolio state")

    run_parser = sub.add_parser("run", help="Continuous discovery and monitoring")
    run_parser.add_argument(
        "minutes",
        nargs="?",
        type=float,
        default=None,
        help="Stop after this many minutes (default: run until interrupted)",
    )

    return parser


def _load(args: argparse.Namespace) -> AppConfig:
    config = load_config(args.config, preset=args.preset)
    if args.demo:
        config = dataclasses.replace(
            config, monitor=dataclasses.replace(config.monitor, demo_mode=True)
        )
    return config


async def _scan(orchestrator: Orchestrator) -> None:
    evaluations = await orchestrator.scan_for_new_pools()
    for evaluation in evaluations:
        pool = orchestrator.pool_cache[evaluation.pool_id]
        print(f"{evaluation.decision.value:<5} {evaluation.score:>4}  {pool.symbols:<14} {pool.pool_id}")
    ledger = orchestrator.ledger
    print()
    print(format_portfolio_status(ledger.get_portfolio_summary(), ledger.get_performance_stats()))


async def _run_continuous(orchestrator: Orchestrator, minutes: float | None) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orchestrator.request_stop)
        except NotImplementedError:
            pass
    await orchestrator.run(minutes * 60 if minutes is not None else None)


def _report(config: AppConfig) -> int:
    state = StateStore(config.state.data_dir).load_portfolio_state()
    if state is None:
        print(f"No saved portfolio state in {config.state.data_dir}")
        return 1
    print("💼 SAVED PORTFOLIO STATE")
    print(f"Total Value: ${state['total_value']:,.2f}")
    print(f"Available Cash: ${state['available_cash']:,.2f}")
    print(f"Total Invested: ${state['total_invested']:,.2f}")
    print(f"Total P&L: ${state['total_pnl']:+,.2f} ({state['total_pnl_percentage']:.2f}%)")
    print(f"Active Positions: {len(state['active_positions'])}/{state['max_positions']}")
    print(f"Closed Positions: {len(state['closed_positions'])}")
    for position in state["active_positions"]:
        print(
            f"  {position['label'] or position['pool_id']}: ${position['current_value']:,.2f}"
            f" ({position['pnl_percentage']:+.2f}%)"
        )
    return 0


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = _load(args)

    if args.command == "report":
        return _report(config)

    orchestrator = Orchestrator(config)
    if args.command == "scan":
        await _scan(orchestrator)
    elif args.command == "run":
        await _run_continuous(orchestrator, args.minutes)
    else:
        build_parser().print_help()
        return 1
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))

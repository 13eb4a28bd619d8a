"""Command-line interface for running the ORB engine."""

import argparse
import sys
import threading
from datetime import date
from pathlib import Path

from loguru import logger

from .config import EngineConfig, load_config
from .dispatch import SessionScheduler, StrategyDispatcher, StrategyRegistry
from .execution import PaperOrderGateway
from .utils import generate_run_id, setup_logger


def build_dispatcher(config: EngineConfig, gateway: PaperOrderGateway) -> StrategyDispatcher:
    """Wire registry and dispatcher for the active strategy."""
    registry = StrategyRegistry.from_config(config, gateway)
    return StrategyDispatcher(
        registry=registry,
        strategy_type=config.strategy_type,
        symbols=config.symbols,
        session=config.session,
        max_workers=config.schedule.max_workers,
    )


def run_live(config: EngineConfig) -> int:
    """Run the scheduler until interrupted."""
    gateway = PaperOrderGateway()
    stop_event = threading.Event()

    with build_dispatcher(config, gateway) as dispatcher:
        scheduler = SessionScheduler(dispatcher, config.schedule, config.session)
        try:
            scheduler.run(stop_event)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping scheduler")
            stop_event.set()

    return 0


def run_replay(config: EngineConfig, session_date: date, max_cycles: int) -> int:
    """Drive one session to completion against the configured source."""
    session = config.session.model_copy(update={"use_wall_clock": False})
    config = config.model_copy(update={"session": session})
    gateway = PaperOrderGateway()

    with build_dispatcher(config, gateway) as dispatcher:
        started = dispatcher.start_all(session_date)
        if started.failed:
            for outcome in started.failed:
                logger.error(f"[{outcome.symbol}] Failed to start: {outcome.error}")

        cycles = 0
        while cycles < max_cycles and dispatcher.active_symbols():
            result = dispatcher.advance_all()
            cycles += 1

            active = [o for o in result.outcomes.values() if o.tick is not None and not o.phase.is_terminal]
            if active and all(o.tick.error for o in active):
                logger.info(f"No more bars after {cycles} cycles")
                break

        dispatcher.close_session("replay finished")

        print("\n" + "=" * 60)
        print(f"REPLAY SUMMARY  {config.strategy_type.value}  {session_date}")
        print("=" * 60)
        for symbol in config.symbols:
            context = dispatcher.context(symbol)
            if context is None:
                print(f"{symbol:<8} not started")
                continue
            state = context.state
            opening_range = state.opening_range
            or_text = f"{opening_range.low:.2f}-{opening_range.high:.2f}" if opening_range else "n/a"
            print(
                f"{symbol:<8} {state.phase.value:<26} OR {or_text:<16} "
                f"intents {len(state.emitted_intents)}  {state.terminal_reason or ''}"
            )
        print("=" * 60)
        print(f"Cycles: {cycles}   Orders booked: {len(gateway.handles)}")

    return 0


def main() -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    parser = argparse.ArgumentParser(description="ORB retest strategy engine")

    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        required=True,
        help="Path to engine configuration YAML file",
    )

    parser.add_argument(
        "--mode",
        choices=["run", "replay"],
        default="run",
        help="Run on the wall clock, or replay one session",
    )

    parser.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Session date to replay (YYYY-MM-DD)",
    )

    parser.add_argument(
        "--max-cycles",
        type=int,
        default=500,
        help="Upper bound on advance cycles in replay mode",
    )

    args = parser.parse_args()

    if not args.config.exists():
        print(f"Error: Config file not found: {args.config}", file=sys.stderr)
        return 1

    if args.mode == "replay" and args.date is None:
        print("Error: --date is required in replay mode", file=sys.stderr)
        return 1

    try:
        config = load_config(args.config)

        setup_logger(
            log_level=config.log_level,
            log_to_file=config.log_to_file,
            log_dir=Path("logs"),
            run_id=generate_run_id(),
        )

        logger.info(f"Loaded configuration from {args.config}")
        logger.info(f"Engine: {config.name} v{config.version}, strategy {config.strategy_type.value}")

        if args.mode == "replay":
            return run_replay(config, args.date, args.max_cycles)
        return run_live(config)

    except Exception as e:
        logger.opt(exception=e).error(f"Engine failed: {e}")
        print(f"\nError: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

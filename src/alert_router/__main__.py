"""
Command line entry point.

    python -m alert_router --config config.yaml preview --ticker INFY --signal BUY --price 1520.5
    python -m alert_router --config config.yaml place --ticker INFY --signal BUY --price 1520.5
"""
import argparse
import asyncio
import logging
import sys
from .commands import COMMANDS, CommandStatus
from .config import load_config
from .core import ApplicationService
from .logger import configure_root_logger
from .models import Alert

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="alert_router", description="Route trading alerts to broker accounts")
    parser.add_argument('--config', default='config.yaml', help="Path to config.yaml")
    parser.add_argument('command', choices=sorted(COMMANDS), help="preview sizes only; place sends orders")
    parser.add_argument('--ticker', required=True)
    parser.add_argument('--signal', required=True, type=str.upper, choices=['BUY', 'SELL'])
    parser.add_argument('--price', required=True, type=float)
    parser.add_argument('--strategy', default='manual')
    parser.add_argument('--source', default='TradingView', choices=['TradingView', 'ChartInk'])
    parser.add_argument('--rebase-timeout', type=float, default=None,
                        help="Seconds to wait for queued rebases after placing (default: until drained)")
    return parser


async def run(args) -> int:
    config = load_config(args.config)
    configure_root_logger(config.logging)

    alert = Alert(
        ticker=args.ticker,
        signal=args.signal,
        price=args.price,
        strategy=args.strategy,
        source=args.source,
    )

    app = ApplicationService(config)
    await app.start()
    try:
        result = await app.run_command(args.command, alert)
        if args.command == 'place':
            for rebase in await app.wait_for_rebases(args.rebase_timeout):
                logger.info(
                    f"Rebase {rebase.order_id} ({rebase.client_id}): {rebase.state.value}"
                    f"{' - ' + rebase.error if rebase.error else ''}"
                )
    finally:
        await app.stop()

    if result.status == CommandStatus.FAILED:
        logger.error(f"{args.command} failed: {result.error}")
        return 1
    logger.info(result.message)
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except (FileNotFoundError, ValueError) as e:
        print(f"Failed to start: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == '__main__':
    sys.exit(main())

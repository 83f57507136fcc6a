#!/usr/bin/env python3
"""Regime Pilot - Main Entry Point.

Runs the trading orchestrator against live CoinGecko prices with paper
execution until interrupted.

Usage:
    python main.py [path/to/config.json]
"""

import asyncio
import logging
import signal
import sys

from regime_pilot.config import ConfigManager, ConfigValidationError
from regime_pilot.engine import CoinGeckoPriceFeed, PaperOrderExecutor, TradingOrchestrator
from regime_pilot.models import StrategyType

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s | %(levelname)-8s | %(name)-40s | %(message)s',
        datefmt='%H:%M:%S',
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


async def main(config_path: str = None) -> int:
    """Main entry point for the trading engine."""
    try:
        config = ConfigManager(config_path).load()
    except ConfigValidationError as e:
        setup_logging("INFO")
        logger.error(f"❌ Configuration error: {e}")
        return 1

    setup_logging(config.log_level)
    logger.info("=" * 70)
    logger.info("🚀 REGIME PILOT - PAPER TRADING")
    logger.info("=" * 70)

    orchestrator = TradingOrchestrator.from_config(
        config,
        price_feed=CoinGeckoPriceFeed(config.feed),
        executor=PaperOrderExecutor(),
    )
    for instrument in config.engine.instruments:
        orchestrator.add_strategy(f"{instrument} momentum", StrategyType.MOMENTUM, instrument)

    shutdown = asyncio.Event()

    def request_shutdown(sig):
        logger.info(f"👋 Received signal {sig.name}, initiating shutdown...")
        shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_shutdown, sig)

    try:
        await orchestrator.start()
        await shutdown.wait()
    finally:
        await orchestrator.stop()

    stats = orchestrator.ledger.get_capital_stats()
    status = orchestrator.get_status()
    logger.info(f"📊 Ticks: {status.tick_count} (skipped {status.skipped_ticks})")
    logger.info(
        f"💰 Capital: ${stats.current_capital:.2f} "
        f"({stats.total_return_pct:+.2f}%, banked ${stats.banked_profit:.2f})"
    )
    logger.info("👋 Regime Pilot shutdown complete")
    return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None))
    sys.exit(exit_code)

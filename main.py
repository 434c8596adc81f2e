"""
Ladder Bot — Main Orchestrator.
Loads config, wires the components, and runs the place/hold/cancel loop.
"""

from __future__ import annotations
import asyncio
import os
import sys
import signal
import logging

from dotenv import load_dotenv

# Load .env file before anything else
load_dotenv()

# Create data dir before FileHandler
os.makedirs("data", exist_ok=True)

logger = logging.getLogger(__name__)

from config import BotConfig
from core.instruments import InstrumentRegistry
from core.position_calculator import PositionCalculator
from exchange.bybit_rest import BybitRestClient
from exchange.errors import BotError, ConfigMissing
from notifications.telegram import TelegramNotifier
from trading.order_gateway import OrderGateway
from trading.scheduler import LadderScheduler


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler("data/bot.log"),
        ],
    )


class Bot:
    """Main bot orchestrator."""

    def __init__(self, config: BotConfig):
        self.config = config

        self.client = BybitRestClient(
            api_key=config.exchange.api_key,
            api_secret=config.exchange.api_secret,
            kline_url=config.exchange.kline_url,
            recv_window=config.exchange.recv_window,
            timeout_sec=config.exchange.http_timeout_sec,
        )
        self.notifier = TelegramNotifier(
            bot_token=config.notifications.telegram_bot_token,
            chat_id=config.notifications.telegram_chat_id,
            enabled=config.notifications.enabled,
            timeout_sec=config.exchange.http_timeout_sec,
        )

        self.registry = InstrumentRegistry()
        self.calculator = PositionCalculator(self.registry, tiers=config.ladder.tiers)
        self.gateway = OrderGateway(
            client=self.client,
            batch_order_url=config.exchange.batch_order_url,
            batch_cancel_url=config.exchange.batch_cancel_url,
            dry_run=config.ladder.dry_run,
        )
        self.scheduler = LadderScheduler(
            config=config.ladder,
            client=self.client,
            calculator=self.calculator,
            gateway=self.gateway,
            notifier=self.notifier,
        )

    async def start(self):
        """Startup sequence, then run until stopped."""
        logger.info("=" * 60)
        logger.info("   LADDER BOT — STARTING")
        logger.info("=" * 60)

        # Instrument precision: built-in table, optionally refreshed from the exchange
        if self.config.exchange.instruments_url:
            try:
                loaded = await self.registry.load_from_exchange(
                    self.client,
                    self.config.exchange.instruments_url,
                    symbols=self.config.ladder.symbols,
                )
                logger.info(f"[BOOT] Loaded precision for {loaded} instruments")
            except BotError as e:
                logger.warning(f"[BOOT] Instrument info unavailable, using defaults: {e}")

        unsupported = [s for s in self.config.ladder.symbols if self.registry.get(s) is None]
        if unsupported:
            logger.warning(f"[BOOT] Unsupported symbols will be skipped: {unsupported}")

        await self.notifier.send_bot_status(
            f"Started ✅\nSymbols: {', '.join(self.config.ladder.symbols)}"
        )

        logger.info("[BOOT] ✅ All systems go. Running...")
        await self.scheduler.run_forever()

    def request_stop(self):
        self.scheduler.stop()

    async def close(self):
        """Release network sessions."""
        await self.notifier.send_bot_status("Stopped 🔴")
        await self.client.close()
        await self.notifier.close()
        logger.info("[SHUTDOWN] Complete.")


async def main():
    """Entry point."""
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        config = BotConfig.from_env()
        config.validate()
    except ConfigMissing as e:
        logger.critical(str(e))
        sys.exit(1)

    bot = Bot(config)

    # Graceful shutdown handler
    if sys.platform != "win32":
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}. Initiating shutdown...")
            bot.request_stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    try:
        await bot.start()
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await bot.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()

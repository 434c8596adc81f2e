"""
Ladder Scheduler — fetch → calculate → place → hold → cancel → cooldown, forever.

ACTIVE:   orders placed, holding period running (24h by default)
SETTLING: cancel issued, short cooldown before the next fetch (60s)

Per-cycle failures are logged and the loop carries on. stop() ends any wait
immediately; orders placed in the current cycle are still cancelled.
"""

from __future__ import annotations
import asyncio
from typing import List, Optional, Tuple, TYPE_CHECKING
from exchange.errors import CycleError, OrderCancellationError
from exchange.models import CyclePhase, PlacedBatch
import logging

if TYPE_CHECKING:
    from config import LadderConfig
    from core.position_calculator import PositionCalculator
    from exchange.bybit_rest import BybitRestClient
    from notifications.telegram import TelegramNotifier
    from trading.order_gateway import OrderGateway

logger = logging.getLogger(__name__)


async def fetch_open_prices(
    client: "BybitRestClient",
    symbols: List[str],
) -> List[Tuple[str, str]]:
    """
    Fetch the latest open for every symbol concurrently.
    A failed symbol is logged and left out; the others are returned in order.
    """
    results = await asyncio.gather(
        *(client.get_latest_open(symbol) for symbol in symbols),
        return_exceptions=True,
    )

    prices: List[Tuple[str, str]] = []
    for symbol, result in zip(symbols, results):
        if isinstance(result, CycleError):
            logger.warning(f"[KLINE] {symbol}: skipped this cycle: {result}")
        elif isinstance(result, BaseException):
            logger.error(f"[KLINE] {symbol}: unexpected error: {result!r}")
        else:
            prices.append(result)
    return prices


class LadderScheduler:
    """Runs the place/hold/cancel cycle until stopped."""

    def __init__(
        self,
        config: "LadderConfig",
        client: "BybitRestClient",
        calculator: "PositionCalculator",
        gateway: "OrderGateway",
        notifier: Optional["TelegramNotifier"] = None,
    ):
        self.config = config
        self.client = client
        self.calculator = calculator
        self.gateway = gateway
        self.notifier = notifier

        self.phase: Optional[CyclePhase] = None
        self.cycles_completed = 0
        self._stop_event = asyncio.Event()

    @property
    def is_stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self):
        """Request shutdown. Wakes up any hold/cooldown wait."""
        if not self._stop_event.is_set():
            logger.info("[CYCLE] Stop requested")
            self._stop_event.set()

    async def run_forever(self):
        logger.info(
            f"[CYCLE] Starting: symbols={self.config.symbols}, "
            f"hold={self.config.hold_hours}h, cooldown={self.config.cooldown_sec}s"
            + (" (DRY RUN)" if self.config.dry_run else "")
        )

        while not self.is_stopped:
            try:
                await self.run_cycle()
            except Exception as e:
                logger.error(f"[CYCLE] Cycle error: {e}", exc_info=True)
                await self._notify(f"Cycle failed: {e}")
                # Avoid a hot loop when something fails before any wait
                await self._wait(self.config.cooldown_sec)

        logger.info(f"[CYCLE] Stopped after {self.cycles_completed} cycles")

    async def run_cycle(self) -> PlacedBatch:
        """One full cycle. Returns the batch that was placed (and cancelled)."""
        prices = await fetch_open_prices(self.client, self.config.symbols)
        if not prices:
            logger.warning("[CYCLE] No prices fetched, nothing to place")

        batch = await self.place_ladders(prices)

        self.phase = CyclePhase.ACTIVE
        logger.info(
            f"[CYCLE] ACTIVE: {len(batch)} orders open, "
            f"holding {self.config.hold_sec}s"
        )
        stopped = await self._wait(self.config.hold_sec)

        self.phase = CyclePhase.SETTLING
        await self.cancel_batch(batch)

        if not stopped:
            logger.info(f"[CYCLE] SETTLING: cooldown {self.config.cooldown_sec}s")
            await self._wait(self.config.cooldown_sec)

        self.cycles_completed += 1
        return batch

    async def place_ladders(self, prices: List[Tuple[str, str]]) -> PlacedBatch:
        """Place one ladder per symbol, sequentially, folding the results."""
        batch = PlacedBatch()

        for symbol, open_price in prices:
            if self.is_stopped:
                break

            tiers = self.calculator.calculate(open_price, symbol)
            if tiers is None:
                continue

            orders = self.calculator.build_orders(symbol, tiers)
            try:
                placed = await self.gateway.place(symbol, orders)
            except CycleError as e:
                logger.error(f"[CYCLE] {symbol}: placement failed, skipping: {e}")
                await self._notify(f"Placement failed for {symbol}: {e}")
                continue
            except Exception as e:
                # Keep what is already folded so it still gets cancelled
                logger.error(f"[CYCLE] {symbol}: unexpected placement error: {e}", exc_info=True)
                await self._notify(f"Placement failed for {symbol}: {e}")
                continue

            batch = batch.merge(placed)
            if placed:
                await self._notify(
                    f"Ladder placed for {symbol} (open {open_price}): "
                    + ", ".join(f"{t.qty_str} @ {t.price_str}" for t in tiers)
                )

        return batch

    async def cancel_batch(self, batch: PlacedBatch):
        if not batch:
            logger.info("[CYCLE] Nothing to cancel")
            return

        try:
            await self.gateway.cancel(batch)
        except OrderCancellationError as e:
            logger.error(f"[CYCLE] Cancellation incomplete: {e}")
            await self._notify(f"Cancellation incomplete: {e}")
            return

        await self._notify(f"Cancelled {len(batch)} orders")

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`. Returns True if stop() was called."""
        if self.is_stopped:
            return True
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _notify(self, message: str):
        if self.notifier is not None:
            await self.notifier.send_cycle_event(message)

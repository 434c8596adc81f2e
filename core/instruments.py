"""
Instrument Registry — symbol -> price/qty precision.
Starts from a built-in table and can be refreshed once from instruments-info.
"""

from __future__ import annotations
from decimal import InvalidOperation
from typing import Dict, List, Optional, TYPE_CHECKING
from exchange.models import InstrumentSpec
import logging

if TYPE_CHECKING:
    from exchange.bybit_rest import BybitRestClient

logger = logging.getLogger(__name__)


DEFAULT_INSTRUMENTS: Dict[str, InstrumentSpec] = {
    "BEAMUSDT": InstrumentSpec("BEAMUSDT", price_decimals=6, qty_decimals=0),
    "SEIUSDT": InstrumentSpec("SEIUSDT", price_decimals=5, qty_decimals=0),
    "AGIXUSDT": InstrumentSpec("AGIXUSDT", price_decimals=5, qty_decimals=0),
}


class InstrumentRegistry:
    """Lookup of formatting precision per traded instrument."""

    def __init__(self, specs: Optional[Dict[str, InstrumentSpec]] = None):
        self._specs: Dict[str, InstrumentSpec] = dict(
            DEFAULT_INSTRUMENTS if specs is None else specs
        )

    @property
    def symbols(self) -> List[str]:
        return list(self._specs.keys())

    def get(self, symbol: str) -> Optional[InstrumentSpec]:
        return self._specs.get(symbol)

    def add(self, spec: InstrumentSpec):
        self._specs[spec.symbol] = spec

    async def load_from_exchange(
        self,
        client: "BybitRestClient",
        url: str,
        symbols: Optional[List[str]] = None,
    ) -> int:
        """
        Pull tickSize / qtyStep from instruments-info and override the table.
        Only `symbols` are kept when given. Returns the number of specs loaded.
        """
        wanted = set(symbols) if symbols else None
        instruments = await client.get_instruments_info(url)

        loaded = 0
        for inst in instruments:
            if not isinstance(inst, dict):
                logger.warning(f"[INSTR] Skipping malformed instrument entry: {inst!r}")
                continue
            symbol = inst.get("symbol")
            if not isinstance(symbol, str) or not symbol:
                continue
            if wanted is not None and symbol not in wanted:
                continue

            price_filter = inst.get("priceFilter") or {}
            lot_filter = inst.get("lotSizeFilter") or {}
            if not isinstance(price_filter, dict) or not isinstance(lot_filter, dict):
                logger.warning(f"[INSTR] {symbol}: malformed filters, keeping default")
                continue
            tick_size = price_filter.get("tickSize")
            qty_step = lot_filter.get("qtyStep")
            if not tick_size or not qty_step:
                logger.warning(f"[INSTR] {symbol}: missing tickSize/qtyStep, keeping default")
                continue

            try:
                spec = InstrumentSpec.from_steps(symbol, tick_size, qty_step)
            except (InvalidOperation, TypeError, ValueError):
                logger.warning(f"[INSTR] {symbol}: bad tickSize/qtyStep {tick_size!r}/{qty_step!r}")
                continue

            self._specs[symbol] = spec
            loaded += 1
            logger.info(
                f"[INSTR] {symbol}: price_decimals={spec.price_decimals}, "
                f"qty_decimals={spec.qty_decimals}"
            )

        if wanted is not None:
            unknown = sorted(s for s in wanted if s not in self._specs)
            if unknown:
                logger.warning(f"[INSTR] No precision known for {unknown}, they will be skipped")

        return loaded

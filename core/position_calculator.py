"""
Position Calculator — builds the three-rung limit-buy ladder below the open.

price_n = open × (1 − discount_n)
qty_n   = allocation_n / price_n

Both are rounded half away from zero to the instrument's precision.
"""

from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional, Sequence, Tuple
from exchange.models import OrderRequest, PositionTier, Side
from core.instruments import InstrumentRegistry
import logging

logger = logging.getLogger(__name__)


DEFAULT_TIERS: Tuple[Tuple[Decimal, Decimal], ...] = (
    (Decimal("0.20"), Decimal("1000")),
    (Decimal("0.25"), Decimal("1000")),
    (Decimal("0.30"), Decimal("2000")),
)


def tier_price(open_price: Decimal, discount: Decimal) -> Decimal:
    return open_price * (Decimal("1") - discount)


def tier_size(allocation: Decimal, price: Decimal) -> Decimal:
    if price <= 0:
        raise ValueError(f"Tier price must be positive, got {price}")
    return allocation / price


def tier_prices(
    open_price: Decimal,
    discounts: Sequence[Decimal] = tuple(d for d, _ in DEFAULT_TIERS),
) -> List[Decimal]:
    return [tier_price(open_price, d) for d in discounts]


class PositionCalculator:
    """Turns an opening price into formatted ladder tiers."""

    def __init__(
        self,
        registry: InstrumentRegistry,
        tiers: Sequence[Tuple[Decimal, Decimal]] = DEFAULT_TIERS,
    ):
        self.registry = registry
        self.tiers = tuple(tiers)

    def calculate(self, open_price, symbol: str) -> Optional[List[PositionTier]]:
        """
        Compute the ladder for a symbol.
        Returns None when the symbol has no precision rule (unsupported), or
        when the open is too small for the tick to hold distinct positive rungs.
        """
        spec = self.registry.get(symbol)
        if spec is None:
            logger.warning(f"[CALC] {symbol}: unsupported symbol, no precision rule")
            return None

        try:
            open_price = Decimal(str(open_price))
        except InvalidOperation:
            logger.warning(f"[CALC] {symbol}: unparseable open price {open_price!r}")
            return None
        if not open_price.is_finite() or open_price <= 0:
            logger.warning(f"[CALC] {symbol}: invalid open price {open_price}")
            return None

        tiers: List[PositionTier] = []
        for discount, allocation in self.tiers:
            raw_price = tier_price(open_price, discount)
            qty = tier_size(allocation, raw_price)

            price = raw_price.quantize(spec.price_quantum, rounding=ROUND_HALF_UP)
            qty = qty.quantize(spec.qty_quantum, rounding=ROUND_HALF_UP)

            if price <= 0 or qty <= 0:
                logger.warning(
                    f"[CALC] {symbol}: open {open_price} too small for tick "
                    f"{spec.price_quantum}, tier {discount} rounds to {price}"
                )
                return None
            if tiers and price >= tiers[-1].price:
                logger.warning(
                    f"[CALC] {symbol}: tiers {tiers[-1].discount} and {discount} "
                    f"collapse to {price} at tick {spec.price_quantum}"
                )
                return None

            tiers.append(PositionTier(
                discount=discount,
                allocation=allocation,
                price=price,
                qty=qty,
                price_str=f"{price:f}",
                qty_str=f"{qty:f}",
            ))

        logger.info(
            f"[CALC] {symbol}: open={open_price}, "
            f"prices={[t.price_str for t in tiers]}, sizes={[t.qty_str for t in tiers]}"
        )
        return tiers

    @staticmethod
    def build_orders(symbol: str, tiers: List[PositionTier]) -> List[OrderRequest]:
        return [
            OrderRequest(
                symbol=symbol,
                qty=tier.qty_str,
                price=tier.price_str,
                side=Side.BUY,
                order_type="Limit",
            )
            for tier in tiers
        ]

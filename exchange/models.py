"""
Data models for the Ladder Bot.
Prices and sizes stay as exchange strings on the wire and Decimal in math.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from exchange.errors import DecodeError


class Side(Enum):
    BUY = "Buy"
    SELL = "Sell"


class CyclePhase(Enum):
    ACTIVE = "ACTIVE"          # Orders placed, holding period running
    SETTLING = "SETTLING"      # Cancel issued, cooldown running


@dataclass(frozen=True)
class Candle:
    """One kline row. Values are kept exactly as the exchange sent them."""
    symbol: str
    start_time: str
    open: str
    high: str
    low: str
    close: str
    volume: str
    turnover: str

    @classmethod
    def from_row(cls, symbol: str, row: Any) -> "Candle":
        """
        Parse a Bybit V5 kline row:
        [startTime, open, high, low, close, volume, turnover]
        """
        if not isinstance(row, (list, tuple)) or len(row) < 7:
            raise DecodeError(f"{symbol}: malformed kline row: {row!r}")
        return cls(symbol, *(str(v) for v in row[:7]))

    @property
    def open_price(self) -> Decimal:
        return Decimal(self.open)


@dataclass
class ApiResponse:
    """Bybit V5 response envelope."""
    ret_code: int
    ret_msg: str
    result: Dict[str, Any] = field(default_factory=dict)
    ret_ext_info: Dict[str, Any] = field(default_factory=dict)
    time: int = 0

    @property
    def ok(self) -> bool:
        return self.ret_code == 0

    @property
    def result_list(self) -> List[Any]:
        return self.result.get("list") or []

    @property
    def ext_list(self) -> List[Dict[str, Any]]:
        """Per-item outcomes that batch endpoints report in retExtInfo."""
        return self.ret_ext_info.get("list") or []

    @classmethod
    def from_dict(cls, data: Any) -> "ApiResponse":
        if not isinstance(data, dict):
            raise DecodeError(f"Expected JSON object, got {type(data).__name__}")
        try:
            ret_code = int(data["retCode"])
            ret_msg = str(data["retMsg"])
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Bad envelope header: {e}")

        result = data.get("result") or {}
        ext = data.get("retExtInfo") or {}
        if not isinstance(result, dict) or not isinstance(ext, dict):
            raise DecodeError("Envelope result/retExtInfo must be objects", code=ret_code)
        if not isinstance(result.get("list", []), list):
            raise DecodeError("Envelope result.list must be an array", code=ret_code)

        try:
            server_time = int(data.get("time", 0))
        except (TypeError, ValueError):
            raise DecodeError(f"Bad envelope time: {data.get('time')!r}", code=ret_code)

        return cls(
            ret_code=ret_code,
            ret_msg=ret_msg,
            result=result,
            ret_ext_info=ext,
            time=server_time,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "retCode": self.ret_code,
            "retMsg": self.ret_msg,
            "result": self.result,
            "retExtInfo": self.ret_ext_info,
            "time": self.time,
        }


@dataclass(frozen=True)
class PositionTier:
    """One rung of the buy ladder."""
    discount: Decimal
    allocation: Decimal
    price: Decimal
    qty: Decimal
    price_str: str
    qty_str: str


@dataclass(frozen=True)
class OrderRequest:
    symbol: str
    qty: str
    price: str
    side: Side = Side.BUY
    order_type: str = "Limit"

    def to_payload(self) -> Dict[str, str]:
        # Key order is part of the signed body
        return {
            "symbol": self.symbol,
            "side": self.side.value,
            "orderType": self.order_type,
            "qty": self.qty,
            "price": self.price,
        }


@dataclass(frozen=True)
class OrderRecord:
    """Exchange-assigned id of a placed order. Only used as a cancel key."""
    symbol: str
    order_id: str

    def to_payload(self) -> Dict[str, str]:
        return {"symbol": self.symbol, "orderId": self.order_id}


@dataclass(frozen=True)
class PlacedBatch:
    """
    Every order placed during one cycle.
    Built by folding the per-symbol placement results; consumed once by cancel.
    """
    records: Tuple[OrderRecord, ...] = ()

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def __bool__(self) -> bool:
        return bool(self.records)

    def merge(self, other: "PlacedBatch") -> "PlacedBatch":
        return PlacedBatch(self.records + other.records)

    def by_symbol(self) -> Dict[str, List[OrderRecord]]:
        grouped: Dict[str, List[OrderRecord]] = {}
        for record in self.records:
            grouped.setdefault(record.symbol, []).append(record)
        return grouped


@dataclass(frozen=True)
class InstrumentSpec:
    """Formatting precision for one instrument."""
    symbol: str
    price_decimals: int
    qty_decimals: int

    @property
    def price_quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.price_decimals)

    @property
    def qty_quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.qty_decimals)

    @classmethod
    def from_steps(cls, symbol: str, tick_size: str, qty_step: str) -> "InstrumentSpec":
        """Derive decimals from exchange step sizes, e.g. tickSize "0.000001" -> 6."""
        return cls(
            symbol=symbol,
            price_decimals=_decimals_of(tick_size),
            qty_decimals=_decimals_of(qty_step),
        )


def _decimals_of(step: str) -> int:
    exponent = Decimal(step).normalize().as_tuple().exponent
    return max(0, -exponent)


def find_ext_code(ext_list: List[Dict[str, Any]], index: int) -> Optional[int]:
    """Per-item code from a batch retExtInfo list, or None when absent."""
    if index >= len(ext_list):
        return None
    try:
        return int(ext_list[index].get("code", 0))
    except (AttributeError, TypeError, ValueError):
        return None

"""
Order Gateway — batch placement and batch cancellation of ladder orders.

POST /v5/order/create-batch   {"category": "linear", "request": [order, ...]}
POST /v5/order/cancel-batch   {"category": "linear", "request": [{symbol, orderId}, ...]}
"""

from __future__ import annotations
from typing import List, TYPE_CHECKING
from exchange.errors import (
    DecodeError,
    OrderCancellationError,
    OrderPlacementError,
    SerializationError,
    TransportError,
)
from exchange.models import ApiResponse, OrderRecord, OrderRequest, PlacedBatch, find_ext_code
from exchange.signer import canonical_body
import logging

if TYPE_CHECKING:
    from exchange.bybit_rest import BybitRestClient

logger = logging.getLogger(__name__)

CATEGORY = "linear"


def build_batch_payload(items: List[dict]) -> dict:
    return {"category": CATEGORY, "request": items}


class OrderGateway:
    """Places and cancels batches of limit orders. Never retries."""

    def __init__(
        self,
        client: "BybitRestClient",
        batch_order_url: str,
        batch_cancel_url: str,
        dry_run: bool = False,
    ):
        self.client = client
        self.batch_order_url = batch_order_url
        self.batch_cancel_url = batch_cancel_url
        self.dry_run = dry_run

    async def place(self, symbol: str, orders: List[OrderRequest]) -> PlacedBatch:
        """
        Submit one batch of orders and return the records to cancel later.
        Raises OrderPlacementError on transport/decoding failure or non-zero retCode.
        """
        payload = build_batch_payload([o.to_payload() for o in orders])

        if self.dry_run:
            logger.info(f"[ORDER] (dry run) {symbol}: {canonical_body(payload)}")
            return PlacedBatch()

        logger.info(
            f"[ORDER] Placing batch: {symbol} "
            + ", ".join(f"{o.side.value} {o.qty} @ {o.price}" for o in orders)
        )

        try:
            response = await self.client.post_signed(self.batch_order_url, payload)
        except (TransportError, DecodeError, SerializationError) as e:
            raise OrderPlacementError(f"{symbol}: batch placement failed: {e}", code=e.code)

        if not response.ok:
            raise OrderPlacementError(
                f"{symbol}: batch placement rejected: {response.ret_msg}",
                code=response.ret_code,
            )

        batch = self._extract_records(symbol, response)
        logger.info(f"[ORDER] {symbol}: {len(batch)}/{len(orders)} orders accepted")
        return batch

    def _extract_records(self, symbol: str, response: ApiResponse) -> PlacedBatch:
        """Pull (symbol, orderId) pairs out of result.list, skipping rejected items."""
        records: List[OrderRecord] = []
        ext_list = response.ext_list

        for i, item in enumerate(response.result_list):
            if not isinstance(item, dict):
                logger.warning(f"[ORDER] {symbol}: unexpected result item {item!r}")
                continue

            code = find_ext_code(ext_list, i)
            order_id = item.get("orderId")
            if code not in (None, 0) or not order_id:
                msg = ext_list[i].get("msg") if i < len(ext_list) else "no orderId"
                logger.error(f"[ORDER] {symbol}: item {i} rejected (code={code}): {msg}")
                continue

            records.append(OrderRecord(symbol=item.get("symbol") or symbol, order_id=order_id))

        return PlacedBatch(tuple(records))

    async def cancel(self, batch: PlacedBatch) -> List[ApiResponse]:
        """
        Cancel every record in the batch, one request per symbol.
        Per-order outcomes are logged, never raised. All symbols are attempted
        before an OrderCancellationError is raised for the ones that failed.
        """
        responses: List[ApiResponse] = []
        failures: List[str] = []

        for symbol, records in batch.by_symbol().items():
            try:
                responses.append(await self._cancel_symbol(symbol, records))
            except OrderCancellationError as e:
                logger.error(f"[CANCEL] {e}")
                failures.append(symbol)

        if failures:
            raise OrderCancellationError(f"Cancellation failed for {failures}")
        return responses

    async def _cancel_symbol(self, symbol: str, records: List[OrderRecord]) -> ApiResponse:
        payload = build_batch_payload([r.to_payload() for r in records])

        logger.info(f"[CANCEL] Cancelling {len(records)} orders on {symbol}")

        try:
            response = await self.client.post_signed(self.batch_cancel_url, payload)
        except (TransportError, DecodeError, SerializationError) as e:
            raise OrderCancellationError(f"{symbol}: batch cancel failed: {e}", code=e.code)

        if not response.ok:
            raise OrderCancellationError(
                f"{symbol}: batch cancel rejected: {response.ret_msg}",
                code=response.ret_code,
            )

        ext_list = response.ext_list
        for i, record in enumerate(records):
            code = find_ext_code(ext_list, i)
            if code not in (None, 0):
                # Typically the order already filled or was closed
                logger.warning(
                    f"[CANCEL] {symbol} {record.order_id}: code={code}, "
                    f"msg={ext_list[i].get('msg')}"
                )
            else:
                logger.info(f"[CANCEL] {symbol} {record.order_id}: cancelled")

        return response

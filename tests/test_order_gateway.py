import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from exchange.errors import (
    DecodeError,
    OrderCancellationError,
    OrderPlacementError,
    TransportError,
)
from exchange.models import ApiResponse, OrderRecord, OrderRequest, PlacedBatch
from trading.order_gateway import OrderGateway
from conftest import envelope


ORDERS = [
    OrderRequest("BEAMUSDT", qty="625", price="1.600000"),
    OrderRequest("BEAMUSDT", qty="667", price="1.500000"),
    OrderRequest("BEAMUSDT", qty="1429", price="1.400000"),
]


def placed_response(order_ids, symbol="BEAMUSDT", codes=None):
    codes = codes or [0] * len(order_ids)
    return ApiResponse.from_dict(envelope(
        result={"list": [
            {"category": "linear", "symbol": symbol, "orderId": oid, "orderLinkId": "", "createAt": "1"}
            for oid in order_ids
        ]},
        ext={"list": [{"code": c, "msg": "OK" if c == 0 else "rejected"} for c in codes]},
    ))


@pytest.fixture
def client():
    client = MagicMock()
    client.post_signed = AsyncMock()
    return client


@pytest.fixture
def gateway(client):
    return OrderGateway(client, "https://x/create-batch", "https://x/cancel-batch")


def test_place_returns_one_record_per_accepted_order(gateway, client):
    client.post_signed.return_value = placed_response(["a", "b", "c"])

    batch = asyncio.run(gateway.place("BEAMUSDT", ORDERS))

    assert list(batch) == [
        OrderRecord("BEAMUSDT", "a"),
        OrderRecord("BEAMUSDT", "b"),
        OrderRecord("BEAMUSDT", "c"),
    ]
    url, payload = client.post_signed.await_args.args
    assert url == "https://x/create-batch"
    assert list(payload) == ["category", "request"]
    assert payload["category"] == "linear"
    assert [o["qty"] for o in payload["request"]] == ["625", "667", "1429"]


def test_place_skips_items_rejected_in_ext_info(gateway, client):
    client.post_signed.return_value = placed_response(["a", "", "c"], codes=[0, 110007, 0])

    batch = asyncio.run(gateway.place("BEAMUSDT", ORDERS))

    assert [r.order_id for r in batch] == ["a", "c"]


def test_place_non_zero_ret_code_is_a_placement_error(gateway, client):
    client.post_signed.return_value = ApiResponse.from_dict(envelope(ret_code=10004, ret_msg="error sign"))

    with pytest.raises(OrderPlacementError) as excinfo:
        asyncio.run(gateway.place("BEAMUSDT", ORDERS))
    assert excinfo.value.code == 10004


@pytest.mark.parametrize("error", [
    TransportError("connection reset"),
    DecodeError("not json"),
])
def test_place_wraps_transport_and_decode_errors(gateway, client, error):
    client.post_signed.side_effect = error

    with pytest.raises(OrderPlacementError):
        asyncio.run(gateway.place("BEAMUSDT", ORDERS))


def test_dry_run_place_sends_nothing(client):
    gateway = OrderGateway(client, "https://x/create-batch", "https://x/cancel-batch", dry_run=True)

    batch = asyncio.run(gateway.place("BEAMUSDT", ORDERS))

    assert not batch
    client.post_signed.assert_not_awaited()


def test_cancel_sends_exactly_the_placed_order_ids(gateway, client):
    client.post_signed.return_value = placed_response(["a", "b", "c"])
    batch = asyncio.run(gateway.place("BEAMUSDT", ORDERS))

    client.post_signed.reset_mock()
    client.post_signed.return_value = placed_response(["a", "b", "c"])
    asyncio.run(gateway.cancel(batch))

    url, payload = client.post_signed.await_args.args
    assert url == "https://x/cancel-batch"
    assert payload == {
        "category": "linear",
        "request": [
            {"symbol": "BEAMUSDT", "orderId": "a"},
            {"symbol": "BEAMUSDT", "orderId": "b"},
            {"symbol": "BEAMUSDT", "orderId": "c"},
        ],
    }


def test_cancel_groups_by_symbol(gateway, client):
    client.post_signed.return_value = ApiResponse.from_dict(envelope())
    batch = PlacedBatch((
        OrderRecord("BEAMUSDT", "1"),
        OrderRecord("SEIUSDT", "2"),
        OrderRecord("BEAMUSDT", "3"),
    ))

    responses = asyncio.run(gateway.cancel(batch))

    assert len(responses) == 2
    sent = [call.args[1]["request"] for call in client.post_signed.await_args_list]
    assert sent == [
        [{"symbol": "BEAMUSDT", "orderId": "1"}, {"symbol": "BEAMUSDT", "orderId": "3"}],
        [{"symbol": "SEIUSDT", "orderId": "2"}],
    ]


def test_cancel_per_order_failures_do_not_raise(gateway, client):
    # e.g. 110001: order already filled
    client.post_signed.return_value = placed_response(["a", "b"], codes=[0, 110001])

    responses = asyncio.run(gateway.cancel(PlacedBatch((OrderRecord("BEAMUSDT", "a"), OrderRecord("BEAMUSDT", "b")))))

    assert responses[0].ok


def test_cancel_attempts_every_symbol_before_raising(gateway, client):
    client.post_signed.side_effect = [
        TransportError("timeout"),
        ApiResponse.from_dict(envelope()),
    ]
    batch = PlacedBatch((OrderRecord("BEAMUSDT", "1"), OrderRecord("SEIUSDT", "2")))

    with pytest.raises(OrderCancellationError) as excinfo:
        asyncio.run(gateway.cancel(batch))

    assert client.post_signed.await_count == 2
    assert "BEAMUSDT" in str(excinfo.value)


def test_cancel_rejected_batch_raises(gateway, client):
    client.post_signed.return_value = ApiResponse.from_dict(envelope(ret_code=10006, ret_msg="rate limit"))

    with pytest.raises(OrderCancellationError):
        asyncio.run(gateway.cancel(PlacedBatch((OrderRecord("BEAMUSDT", "1"),))))


def test_cancel_empty_batch_is_a_no_op(gateway, client):
    assert asyncio.run(gateway.cancel(PlacedBatch())) == []
    client.post_signed.assert_not_awaited()


def test_placed_payload_serializes_in_wire_order(gateway, client):
    client.post_signed.return_value = placed_response(["a", "b", "c"])
    asyncio.run(gateway.place("BEAMUSDT", ORDERS))

    _, payload = client.post_signed.await_args.args
    assert json.dumps(payload, separators=(",", ":")).startswith(
        '{"category":"linear","request":[{"symbol":"BEAMUSDT","side":"Buy","orderType":"Limit","qty":"625"'
    )

import json
from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer


def kline_row(open_price="2.00", start="1700000000000"):
    return [start, open_price, "2.10", "1.90", "2.05", "12345", "25000.5"]


def envelope(result=None, ret_code=0, ret_msg="OK", ext=None, time=1700000000123):
    return {
        "retCode": ret_code,
        "retMsg": ret_msg,
        "result": result if result is not None else {},
        "retExtInfo": ext if ext is not None else {},
        "time": time,
    }


class FakeBybit:
    """In-process stand-in for the three V5 endpoints the bot talks to."""

    def __init__(self):
        self.klines = {}            # symbol -> list of rows
        self.kline_status = 200
        self.kline_raw = None       # overrides the JSON body when set
        self.order_requests = []    # (headers, raw body)
        self.cancel_requests = []
        self.order_ret_code = 0
        self.order_raw = {}         # symbol -> raw create-batch response bytes
        self.instruments = []
        self._next_id = 1

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/v5/market/kline", self._kline)
        app.router.add_get("/v5/market/instruments-info", self._instruments)
        app.router.add_post("/v5/order/create-batch", self._create_batch)
        app.router.add_post("/v5/order/cancel-batch", self._cancel_batch)
        return app

    async def _kline(self, request):
        if self.kline_status != 200:
            return web.Response(status=self.kline_status, text="upstream down")
        if self.kline_raw is not None:
            if isinstance(self.kline_raw, bytes):
                return web.Response(body=self.kline_raw, content_type="application/json")
            return web.Response(text=self.kline_raw, content_type="application/json")
        symbol = request.query.get("symbol", "")
        rows = self.klines.get(symbol, [])
        return web.json_response(envelope({
            "symbol": symbol,
            "category": request.query.get("category", "linear"),
            "list": rows,
        }))

    async def _instruments(self, request):
        return web.json_response(envelope({"category": "linear", "list": self.instruments}))

    async def _create_batch(self, request):
        raw = await request.text()
        self.order_requests.append((request.headers.copy(), raw))
        if self.order_ret_code != 0:
            return web.json_response(envelope(ret_code=self.order_ret_code, ret_msg="rejected"))

        body = json.loads(raw)
        symbol = body["request"][0]["symbol"]
        if symbol in self.order_raw:
            return web.Response(body=self.order_raw[symbol], content_type="application/json")

        items, ext = [], []
        for order in body["request"]:
            items.append({
                "category": body["category"],
                "symbol": order["symbol"],
                "orderId": f"oid-{self._next_id}",
                "orderLinkId": "",
                "createAt": "1700000000200",
            })
            ext.append({"code": 0, "msg": "OK"})
            self._next_id += 1
        return web.json_response(envelope({"list": items}, ext={"list": ext}))

    async def _cancel_batch(self, request):
        raw = await request.text()
        self.cancel_requests.append((request.headers.copy(), raw))
        body = json.loads(raw)
        items = [
            {"category": body["category"], "symbol": r["symbol"], "orderId": r["orderId"], "orderLinkId": ""}
            for r in body["request"]
        ]
        ext = [{"code": 0, "msg": "OK"} for _ in items]
        return web.json_response(envelope({"list": items}, ext={"list": ext}))


@asynccontextmanager
async def serve(fake: FakeBybit):
    server = TestServer(fake.app())
    await server.start_server()
    try:
        yield server
    finally:
        await server.close()


@pytest.fixture
def fake_bybit():
    return FakeBybit()

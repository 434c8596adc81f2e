"""
Bybit V5 REST API Client.
Handles authentication, kline reads, and the signed POST used by batch orders.
"""

from __future__ import annotations
import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple
import aiohttp
import logging

from exchange.errors import DecodeError, NoDataError, TransportError
from exchange.models import ApiResponse, Candle
from exchange.signer import auth_headers, canonical_body, sign, timestamp_ms

logger = logging.getLogger(__name__)


class BybitRestClient:
    """Async Bybit V5 REST API wrapper."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        kline_url: str,
        recv_window: str = "10000",
        timeout_sec: float = 10,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.kline_url = kline_url
        self._recv_window = recv_window
        self._timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(
        self,
        method: str,
        url: str,
        body: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> ApiResponse:
        """Send one request and decode the V5 envelope. No retries."""
        session = await self._get_session()

        try:
            payload = body.encode("utf-8") if body is not None else None
            async with session.request(method, url, data=payload, headers=headers) as resp:
                if resp.status >= 400:
                    text = (await resp.read()).decode("utf-8", errors="replace")
                    raise TransportError(
                        f"{method} {url} HTTP {resp.status}: {text[:200]}",
                        code=resp.status,
                    )
                raw = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"[REST] {method} {url} Exception: {e!r}")
            raise TransportError(f"{method} {url} failed: {e!r}")

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise DecodeError(f"{method} {url} returned undecodable body: {e}")

        response = ApiResponse.from_dict(data)
        if not response.ok:
            logger.error(
                f"[REST] {method} {url} Error: "
                f"code={response.ret_code}, msg={response.ret_msg}"
            )
        return response

    async def post_signed(self, url: str, payload: Dict[str, Any]) -> ApiResponse:
        """POST a JSON body with Bybit HMAC auth headers."""
        body = canonical_body(payload)
        timestamp = timestamp_ms()
        signature = sign(timestamp, self.api_key, self._recv_window, body, self.api_secret)
        headers = auth_headers(self.api_key, signature, timestamp, self._recv_window)
        return await self._request("POST", url, body=body, headers=headers)

    # ==================== Market Endpoints ====================

    def kline_url_for(self, symbol: str) -> str:
        joiner = "&" if "?" in self.kline_url else "?"
        return f"{self.kline_url}{joiner}symbol={symbol}"

    async def get_latest_candle(self, symbol: str) -> Candle:
        """
        Most recent candle for a symbol.
        Bybit returns klines newest first, so that is list[0].
        """
        response = await self._request("GET", self.kline_url_for(symbol))
        if not response.ok:
            raise DecodeError(f"{symbol}: kline request rejected: {response.ret_msg}", code=response.ret_code)

        rows = response.result_list
        if not rows:
            raise NoDataError(f"{symbol}: no kline data found")
        return Candle.from_row(symbol, rows[0])

    async def get_latest_open(self, symbol: str) -> Tuple[str, str]:
        candle = await self.get_latest_candle(symbol)
        logger.debug(f"[KLINE] {symbol}: start={candle.start_time} open={candle.open}")
        return symbol, candle.open

    async def get_instruments_info(self, url: str) -> List[Dict]:
        """Get instrument specifications (tick size, qty step)."""
        response = await self._request("GET", url)
        if not response.ok:
            raise DecodeError(f"instruments-info rejected: {response.ret_msg}", code=response.ret_code)
        return response.result_list

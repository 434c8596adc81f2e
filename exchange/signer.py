"""
Bybit V5 request signing (HMAC-SHA256, X-BAPI-SIGN-TYPE 2).

The signed string is timestamp + api_key + recv_window + body, and the body
must be byte-identical to what goes over the wire.
"""

from __future__ import annotations
import hashlib
import hmac
import json
import time
from typing import Any, Dict

from exchange.errors import SerializationError


def timestamp_ms() -> str:
    return str(int(time.time() * 1000))


def canonical_body(payload: Dict[str, Any]) -> str:
    """Compact JSON in insertion order (category, then request)."""
    try:
        return json.dumps(payload, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialize request body: {e}")


def sign(
    timestamp: str,
    api_key: str,
    recv_window: str,
    body: str,
    api_secret: str,
) -> str:
    """Generate HMAC-SHA256 signature as lowercase hex."""
    param_str = f"{timestamp}{api_key}{recv_window}{body}"
    return hmac.new(
        api_secret.encode("utf-8"),
        param_str.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def auth_headers(
    api_key: str,
    signature: str,
    timestamp: str,
    recv_window: str,
) -> Dict[str, str]:
    return {
        "X-BAPI-API-KEY": api_key,
        "X-BAPI-SIGN": signature,
        "X-BAPI-SIGN-TYPE": "2",
        "X-BAPI-TIMESTAMP": timestamp,
        "X-BAPI-RECV-WINDOW": recv_window,
        "Content-Type": "application/json",
    }

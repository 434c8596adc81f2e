"""
Ladder Bot — Configuration
All tunable parameters in one place.
"""

import os
from dataclasses import dataclass, field
from typing import List

from exchange.errors import ConfigMissing
from core.position_calculator import DEFAULT_TIERS


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    try:
        number = int(value)
    except ValueError:
        raise ConfigMissing(f"{name} must be an integer, got {value!r}")
    if number < minimum:
        raise ConfigMissing(f"{name} must be at least {minimum}, got {number}")
    return number


@dataclass
class LadderConfig:
    symbols: List[str] = field(default_factory=lambda: [
        "BEAMUSDT", "SEIUSDT", "AGIXUSDT",
    ])
    # (discount below open, USDT notional) per tier
    tiers: List[tuple] = field(default_factory=lambda: list(DEFAULT_TIERS))
    hold_hours: int = 24                # Orders stay open this long
    cooldown_sec: int = 60              # Pause between cancel and next fetch
    dry_run: bool = False               # Log signed payloads, send nothing

    @property
    def hold_sec(self) -> int:
        return self.hold_hours * 3600


@dataclass
class ExchangeConfig:
    api_key: str = ""
    api_secret: str = ""
    kline_url: str = ""                 # e.g. https://api.bybit.com/v5/market/kline?category=linear&interval=D&limit=1
    batch_order_url: str = ""           # e.g. https://api.bybit.com/v5/order/create-batch
    batch_cancel_url: str = ""          # e.g. https://api.bybit.com/v5/order/cancel-batch
    instruments_url: str = ""           # Optional: /v5/market/instruments-info?category=linear
    recv_window: str = "10000"
    http_timeout_sec: int = 10


@dataclass
class NotificationConfig:
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    enabled: bool = True


@dataclass
class BotConfig:
    ladder: LadderConfig = field(default_factory=LadderConfig)
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    log_level: str = "INFO"

    # env var -> attribute on ExchangeConfig
    REQUIRED_ENV = {
        "BYBIT_API_KEY": "api_key",
        "BYBIT_API_SECRET": "api_secret",
        "KLINE_URL": "kline_url",
        "BATCH_ORDER_URL": "batch_order_url",
        "BATCH_CANCEL_URL": "batch_cancel_url",
    }

    @classmethod
    def from_env(cls) -> "BotConfig":
        """Load config with environment variable overrides. Raises ConfigMissing on bad numbers."""
        config = cls()
        for env_name, attr in cls.REQUIRED_ENV.items():
            setattr(config.exchange, attr, os.getenv(env_name, "").strip())
        config.exchange.instruments_url = os.getenv("INSTRUMENTS_URL", "").strip()
        config.exchange.recv_window = os.getenv("RECV_WINDOW", "10000")
        config.exchange.http_timeout_sec = _env_int("HTTP_TIMEOUT_SEC", 10, minimum=1)

        symbols = os.getenv("SYMBOLS", "")
        if symbols:
            config.ladder.symbols = [s.strip().upper() for s in symbols.split(",") if s.strip()]
        config.ladder.hold_hours = _env_int("HOLD_HOURS", 24)
        config.ladder.cooldown_sec = _env_int("COOLDOWN_SEC", 60)
        config.ladder.dry_run = os.getenv("DRY_RUN", "false").lower() == "true"

        config.notifications.telegram_bot_token = os.getenv("TELEGRAM_BOT_TOKEN", "")
        config.notifications.telegram_chat_id = os.getenv("TELEGRAM_CHAT_ID", "")
        config.log_level = os.getenv("LOG_LEVEL", "INFO")
        return config

    def validate(self):
        """Raise ConfigMissing naming every required value that is unset."""
        missing = [
            env_name for env_name, attr in self.REQUIRED_ENV.items()
            if not getattr(self.exchange, attr)
        ]
        if missing:
            raise ConfigMissing(f"Missing required configuration: {', '.join(missing)}")
        if not self.ladder.symbols:
            raise ConfigMissing("SYMBOLS is empty")

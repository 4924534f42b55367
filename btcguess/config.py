"""BTC Guess — application configuration.

Loads .env variables into a typed config object.
Validates values on startup.
"""

import math
import os
from dataclasses import dataclass

from dotenv import load_dotenv


BINANCE_REST_HOSTS = (
    "api.binance.com",
    "api1.binance.com",
    "api2.binance.com",
    "api3.binance.com",
)
BINANCE_STREAM_URL = "wss://stream.binance.com:9443/ws"
COINGECKO_BASE_URL = "https://api.coingecko.com"
COINCAP_BASE_URL = "https://api.coincap.io"

_FEED_MODES = ("stream", "poll")


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    symbol: str
    coin_id: str
    kline_interval: str
    kline_limit: int
    depth_cache_seconds: float
    price_feed_mode: str  # "stream" or "poll"
    price_poll_seconds: float
    ws_reconnect_seconds: float
    settle_interval_seconds: float
    support_level: float
    resistance_level: float
    http_timeout_seconds: float
    log_level: str
    http_port: int

    @property
    def ticker_stream_url(self) -> str:
        """Return the Binance ticker channel URL for the configured symbol."""
        return f"{BINANCE_STREAM_URL}/{self.symbol.lower()}@ticker"


def _read(name: str, default: str, cast):
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable has a default. Raises ``ValueError`` naming the variable
    when a value cannot be parsed or is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    config = Config(
        symbol=os.environ.get("SYMBOL", "BTCUSDT").upper(),
        coin_id=os.environ.get("COIN_ID", "bitcoin"),
        kline_interval=os.environ.get("KLINE_INTERVAL", "1h"),
        kline_limit=_read("KLINE_LIMIT", "20", int),
        depth_cache_seconds=_read("DEPTH_CACHE_SECONDS", "60", float),
        price_feed_mode=os.environ.get("PRICE_FEED_MODE", "stream").lower(),
        price_poll_seconds=_read("PRICE_POLL_SECONDS", "5", float),
        ws_reconnect_seconds=_read("WS_RECONNECT_SECONDS", "5", float),
        settle_interval_seconds=_read("SETTLE_INTERVAL_SECONDS", "1", float),
        support_level=_read("SUPPORT_LEVEL", "94200", float),
        resistance_level=_read("RESISTANCE_LEVEL", "94800", float),
        http_timeout_seconds=_read("HTTP_TIMEOUT_SECONDS", "10", float),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        http_port=_read("HTTP_PORT", "8080", int),
    )
    _validate(config)
    return config


def _validate(config: Config) -> None:
    for name, value in (
        ("DEPTH_CACHE_SECONDS", config.depth_cache_seconds),
        ("PRICE_POLL_SECONDS", config.price_poll_seconds),
        ("WS_RECONNECT_SECONDS", config.ws_reconnect_seconds),
        ("SETTLE_INTERVAL_SECONDS", config.settle_interval_seconds),
        ("SUPPORT_LEVEL", config.support_level),
        ("RESISTANCE_LEVEL", config.resistance_level),
        ("HTTP_TIMEOUT_SECONDS", config.http_timeout_seconds),
    ):
        if not math.isfinite(value):
            raise ValueError(f"{name} must be a finite number")
    if config.kline_limit < 2:
        raise ValueError("KLINE_LIMIT must be at least 2")
    if config.depth_cache_seconds <= 0:
        raise ValueError("DEPTH_CACHE_SECONDS must be positive")
    if config.price_feed_mode not in _FEED_MODES:
        raise ValueError(
            f"PRICE_FEED_MODE must be one of {', '.join(_FEED_MODES)}"
        )
    for name, value in (
        ("PRICE_POLL_SECONDS", config.price_poll_seconds),
        ("WS_RECONNECT_SECONDS", config.ws_reconnect_seconds),
        ("SETTLE_INTERVAL_SECONDS", config.settle_interval_seconds),
        ("HTTP_TIMEOUT_SECONDS", config.http_timeout_seconds),
    ):
        if value <= 0:
            raise ValueError(f"{name} must be positive")
    if config.resistance_level <= config.support_level:
        raise ValueError("RESISTANCE_LEVEL must be above SUPPORT_LEVEL")

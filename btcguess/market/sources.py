"""Candle source adapters — Binance, CoinGecko and CoinCap.

Every adapter exposes the same coroutine::

    await source.fetch_candles(symbol, interval, limit) -> list[Candle]

and raises ``SourceError`` for any failure: unreachable host, upstream HTTP
error status, malformed body, or too few candles to analyse. Adapters share
one ``httpx.AsyncClient`` owned by the caller.
"""

import logging
import math
import time
from typing import Protocol, Sequence

import httpx

from btcguess.config import (
    BINANCE_REST_HOSTS,
    COINCAP_BASE_URL,
    COINGECKO_BASE_URL,
    Config,
)
from btcguess.market.models import Candle

logger = logging.getLogger("btcguess.sources")

MIN_CANDLES = 2

_MALFORMED = (ValueError, KeyError, TypeError, IndexError)


class SourceError(Exception):
    """A single candle source failed."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class CandleSource(Protocol):
    """Structural interface shared by all candle adapters."""

    name: str

    async def fetch_candles(
        self, symbol: str, interval: str, limit: int
    ) -> list[Candle]:
        ...


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"returned {exc.response.status_code}"
    if isinstance(exc, httpx.TransportError):
        return f"request failed ({exc.__class__.__name__}: {exc})"
    return f"malformed response ({exc.__class__.__name__}: {exc})"


def _price(raw) -> float:
    """Parse an upstream price, rejecting non-finite and non-positive values."""
    price = float(raw)
    if not math.isfinite(price) or price <= 0:
        raise ValueError(f"invalid price {raw!r}")
    return price


def _flat_candle(price: float, at_ms: int, span_ms: int = 0) -> Candle:
    return Candle(
        open_time=at_ms,
        open=price,
        high=price,
        low=price,
        close=price,
        volume=0.0,
        close_time=at_ms + span_ms,
    )


def _require_enough(name: str, candles: list[Candle]) -> list[Candle]:
    if len(candles) < MIN_CANDLES:
        raise SourceError(
            name,
            f"insufficient data ({len(candles)} candle(s), need {MIN_CANDLES})",
        )
    return candles


# ── Binance ──────────────────────────────────────────────────────────────


class BinanceKlineSource:
    """Spot klines from Binance, tried across equivalent hostnames.

    The first 2xx response wins. When every host fails the last host's
    error is raised.
    """

    name = "Binance"

    def __init__(
        self,
        client: httpx.AsyncClient,
        hosts: Sequence[str] = BINANCE_REST_HOSTS,
        timeout: float = 10.0,
    ) -> None:
        if not hosts:
            raise ValueError("at least one Binance host is required")
        self._client = client
        self._hosts = list(hosts)
        self._timeout = timeout

    async def fetch_candles(
        self, symbol: str, interval: str, limit: int
    ) -> list[Candle]:
        last_error = "no hosts tried"
        for host in self._hosts:
            try:
                resp = await self._client.get(
                    f"https://{host}/api/v3/klines",
                    params={
                        "symbol": symbol.upper(),
                        "interval": interval,
                        "limit": limit,
                    },
                    timeout=self._timeout,
                )
                resp.raise_for_status()
                candles = _parse_klines(resp.json())
            except (httpx.HTTPError, *_MALFORMED) as exc:
                last_error = f"{host} {_describe(exc)}"
                logger.warning("Binance host %s failed: %s", host, _describe(exc))
                continue
            logger.debug("Binance host %s returned %d candles", host, len(candles))
            return _require_enough(self.name, candles)

        raise SourceError(self.name, last_error)


def _parse_klines(raw) -> list[Candle]:
    """Parse Binance's positional kline arrays (oldest first)."""
    if not isinstance(raw, list):
        raise ValueError(f"expected a list, got {type(raw).__name__}")
    candles: list[Candle] = []
    for entry in raw:
        if not isinstance(entry, list) or len(entry) < 7:
            raise ValueError(f"bad kline entry: {entry!r}")
        candles.append(
            Candle(
                open_time=int(entry[0]),
                open=_price(entry[1]),
                high=_price(entry[2]),
                low=_price(entry[3]),
                close=_price(entry[4]),
                volume=float(entry[5]),
                close_time=int(entry[6]),
            )
        )
    return candles


# ── CoinGecko ────────────────────────────────────────────────────────────


class CoinGeckoSpotSource:
    """Spot price from CoinGecko, reshaped into a flat candle series.

    CoinGecko's simple price endpoint has no history, so the single spot
    price is repeated *limit* times.
    """

    name = "CoinGecko"

    def __init__(
        self,
        client: httpx.AsyncClient,
        coin_id: str = "bitcoin",
        base_url: str = COINGECKO_BASE_URL,
        timeout: float = 10.0,
        clock=time.time,
    ) -> None:
        self._client = client
        self._coin_id = coin_id
        self._base_url = base_url
        self._timeout = timeout
        self._clock = clock

    async def fetch_candles(
        self, symbol: str, interval: str, limit: int
    ) -> list[Candle]:
        try:
            resp = await self._client.get(
                f"{self._base_url}/api/v3/simple/price",
                params={"ids": self._coin_id, "vs_currencies": "usd"},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            price = _price(resp.json()[self._coin_id]["usd"])
        except (httpx.HTTPError, *_MALFORMED) as exc:
            raise SourceError(self.name, _describe(exc)) from exc

        now_ms = int(self._clock() * 1000)
        return _require_enough(
            self.name, [_flat_candle(price, now_ms) for _ in range(limit)]
        )


# ── CoinCap ──────────────────────────────────────────────────────────────


class CoinCapHistorySource:
    """Hourly price history from CoinCap, one flat candle per point."""

    name = "CoinCap"

    def __init__(
        self,
        client: httpx.AsyncClient,
        coin_id: str = "bitcoin",
        base_url: str = COINCAP_BASE_URL,
        timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._coin_id = coin_id
        self._base_url = base_url
        self._timeout = timeout

    async def fetch_candles(
        self, symbol: str, interval: str, limit: int
    ) -> list[Candle]:
        try:
            resp = await self._client.get(
                f"{self._base_url}/v2/assets/{self._coin_id}/history",
                params={"interval": "h1"},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            points = resp.json()["data"]
            candles = [
                _flat_candle(_price(p["priceUsd"]), int(p.get("time", 0)), 3_600_000)
                for p in points
            ]
        except (httpx.HTTPError, *_MALFORMED) as exc:
            raise SourceError(self.name, _describe(exc)) from exc

        return _require_enough(self.name, candles[-limit:])


def default_sources(client: httpx.AsyncClient, config: Config) -> list[CandleSource]:
    """Return the fallback chain in priority order."""
    timeout = config.http_timeout_seconds
    return [
        BinanceKlineSource(client, timeout=timeout),
        CoinGeckoSpotSource(client, coin_id=config.coin_id, timeout=timeout),
        CoinCapHistorySource(client, coin_id=config.coin_id, timeout=timeout),
    ]

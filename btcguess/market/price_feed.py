"""Live BTC price — one-shot ticker client plus polling and streaming feeds.

Both feed modes converge on the same ``PriceFeed`` holder: the most recent
sample to arrive wins. There is no ordering guarantee beyond arrival order.
"""

import asyncio
import json
import logging
import math
import time
from typing import Callable, Optional

import httpx
import websockets

from btcguess.config import BINANCE_REST_HOSTS
from btcguess.market.models import PriceSample

logger = logging.getLogger("btcguess.price_feed")


class PriceFetchError(Exception):
    """The upstream ticker could not produce a price."""


class BinanceTickerClient:
    """One-shot ``/api/v3/ticker/price`` requests."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        host: str = BINANCE_REST_HOSTS[0],
        timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._url = f"https://{host}/api/v3/ticker/price"
        self._timeout = timeout
        self._clock = clock

    async def fetch_price(self, symbol: str) -> PriceSample:
        """Return the latest trade price for *symbol*.

        Raises ``PriceFetchError`` on network failure, an HTTP error status
        or a malformed body.
        """
        try:
            resp = await self._client.get(
                self._url,
                params={"symbol": symbol.upper()},
                timeout=self._timeout,
            )
            resp.raise_for_status()
            price = float(resp.json()["price"])
            if not math.isfinite(price) or price <= 0:
                raise ValueError(f"invalid price {price}")
        except httpx.HTTPStatusError as exc:
            raise PriceFetchError(
                f"Binance API returned status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise PriceFetchError(f"Binance API unreachable: {exc}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise PriceFetchError(f"Binance API malformed response: {exc}") from exc
        return PriceSample(time=self._clock(), price=price)


class PriceFeed:
    """Holder for the most recent price sample."""

    def __init__(self) -> None:
        self._latest: Optional[PriceSample] = None

    @property
    def latest(self) -> Optional[PriceSample]:
        return self._latest

    @property
    def price(self) -> Optional[float]:
        """Latest price, or ``None`` before the first sample."""
        return self._latest.price if self._latest else None

    def update(self, sample: PriceSample) -> None:
        self._latest = sample


class PollingPriceFeed:
    """Repeat the one-shot ticker request on a fixed interval.

    A failed poll is logged and the loop carries on.
    """

    def __init__(
        self,
        client: BinanceTickerClient,
        feed: PriceFeed,
        symbol: str,
        interval: float = 5.0,
    ) -> None:
        self._client = client
        self._feed = feed
        self._symbol = symbol
        self._interval = interval
        self._running = False

    async def poll_once(self) -> Optional[PriceSample]:
        try:
            sample = await self._client.fetch_price(self._symbol)
        except PriceFetchError as exc:
            logger.warning("Price poll failed: %s", exc)
            return None
        self._feed.update(sample)
        return sample

    async def run(self, max_cycles: int = 0) -> None:
        """Poll until stopped (or *max_cycles* polls when non-zero)."""
        self._running = True
        cycle = 0
        logger.info("Polling %s every %.1fs", self._symbol, self._interval)
        while self._running:
            cycle += 1
            await self.poll_once()
            if max_cycles > 0 and cycle >= max_cycles:
                break
            await asyncio.sleep(self._interval)
        self._running = False

    def stop(self) -> None:
        self._running = False


def parse_ticker_message(message, clock: Callable[[], float] = time.time) -> Optional[PriceSample]:
    """Extract a ``PriceSample`` from a ticker-channel message.

    Returns ``None`` for anything that is not a ticker with a numeric ``c``
    (current price) field.
    """
    try:
        payload = json.loads(message)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, dict) or "c" not in payload:
        return None
    try:
        price = float(payload["c"])
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return PriceSample(time=clock(), price=price)


class StreamingPriceFeed:
    """Persistent WebSocket subscription to the Binance ticker channel.

    On a dropped or failed connection waits *reconnect_seconds* and
    reconnects. The backoff is fixed.
    """

    def __init__(
        self,
        feed: PriceFeed,
        url: str,
        reconnect_seconds: float = 5.0,
        connect=websockets.connect,
        sleep=asyncio.sleep,
    ) -> None:
        self._feed = feed
        self._url = url
        self._reconnect = reconnect_seconds
        self._connect = connect
        self._sleep = sleep
        self._running = False
        self._ws = None
        self._close_task: Optional[asyncio.Task] = None

    async def run(self, max_cycles: int = 0) -> None:
        """Stream until stopped.

        *max_cycles* bounds the number of connection attempts when non-zero.
        """
        self._running = True
        cycle = 0
        while self._running:
            cycle += 1
            try:
                async with self._connect(self._url, ping_interval=20) as ws:
                    self._ws = ws
                    logger.info("Connected to %s", self._url)
                    async for message in ws:
                        sample = parse_ticker_message(message)
                        if sample is None:
                            logger.debug("Skipping non-ticker message")
                            continue
                        self._feed.update(sample)
                        if not self._running:
                            break
            except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
                logger.warning("Ticker stream error: %s", exc)
            finally:
                self._ws = None

            if not self._running or (max_cycles > 0 and cycle >= max_cycles):
                break
            logger.info("Reconnecting in %.1fs", self._reconnect)
            await self._sleep(self._reconnect)
        self._running = False
        if self._close_task is not None:
            await self._close_task
            self._close_task = None

    def stop(self) -> None:
        """Stop after the current message; closes the socket if open."""
        self._running = False
        if self._ws is not None and self._close_task is None:
            self._close_task = asyncio.ensure_future(self._ws.close())

"""Runtime — wires the shared components and runs the background loops.

The price feed (polling or streaming) and the settlement sweep run as
concurrent ``asyncio`` tasks next to the API server and can be stopped
together.
"""

import asyncio
import logging

import httpx

from btcguess.analysis.depth import DepthAnalyzer
from btcguess.api.routers import configure_routers
from btcguess.cache import ExpiringSlot
from btcguess.config import Config
from btcguess.market.price_feed import (
    BinanceTickerClient,
    PollingPriceFeed,
    PriceFeed,
    PriceFetchError,
    StreamingPriceFeed,
)
from btcguess.market.sources import default_sources
from btcguess.predictions.book import PredictionBook, SettlementTask
from btcguess.predictions.service import PredictionService

logger = logging.getLogger("btcguess.runtime")


class Runtime:
    """Lifecycle owner for the HTTP client, feed, book and sweep.

    Args:
        config: ``Config`` loaded from ``.env``.
        client: Optional shared ``httpx.AsyncClient``; one is created (and
                later closed) when omitted.
    """

    def __init__(self, config: Config, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()

        self.feed = PriceFeed()
        self.ticker = BinanceTickerClient(
            self.client, timeout=config.http_timeout_seconds
        )
        self.analyzer = DepthAnalyzer(
            sources=default_sources(self.client, config),
            cache=ExpiringSlot(config.depth_cache_seconds),
            symbol=config.symbol,
            interval=config.kline_interval,
            limit=config.kline_limit,
        )
        self.book = PredictionBook()
        self.service = PredictionService(
            book=self.book,
            feed=self.feed,
            analyzer=self.analyzer,
            support=config.support_level,
            resistance=config.resistance_level,
        )
        self.settlement = SettlementTask(
            self.book, self.feed, interval=config.settle_interval_seconds
        )
        if config.price_feed_mode == "poll":
            self.price_loop = PollingPriceFeed(
                self.ticker, self.feed, config.symbol,
                interval=config.price_poll_seconds,
            )
        else:
            self.price_loop = StreamingPriceFeed(
                self.feed,
                config.ticker_stream_url,
                reconnect_seconds=config.ws_reconnect_seconds,
            )

    def configure_api(self) -> None:
        """Point the API routers at this runtime's components."""
        configure_routers(
            ticker=self.ticker,
            analyzer=self.analyzer,
            service=self.service,
            book=self.book,
            feed=self.feed,
            symbol=self._config.symbol,
        )

    async def prime_feed(self) -> None:
        """Seed the feed with one ticker request before the stream delivers."""
        try:
            self.feed.update(await self.ticker.fetch_price(self._config.symbol))
        except PriceFetchError as exc:
            logger.warning("Initial price fetch failed: %s", exc)

    async def run_all(self) -> None:
        """Run the price loop and the settlement sweep until stopped."""
        logger.info(
            "Starting %s price feed and settlement sweep for %s",
            self._config.price_feed_mode, self._config.symbol,
        )
        if isinstance(self.price_loop, StreamingPriceFeed):
            await self.prime_feed()
        results = await asyncio.gather(
            self.price_loop.run(),
            self.settlement.run(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("Background loop crashed: %s", result)

    def stop_all(self) -> None:
        """Signal both loops to stop."""
        self.price_loop.stop()
        self.settlement.stop()
        logger.info("Stop signal sent to background loops.")

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

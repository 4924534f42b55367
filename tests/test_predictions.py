"""Tests for btcguess.predictions — lifecycle, settlement sweep and service."""

from unittest.mock import AsyncMock

import pytest

from btcguess.analysis.depth import AllSourcesFailedError, analyze_closes
from btcguess.analysis.heuristic import assess_price
from btcguess.market.models import PriceSample
from btcguess.market.price_feed import PriceFeed
from btcguess.market.sources import SourceError
from btcguess.predictions.book import PredictionBook, SettlementTask
from btcguess.predictions.models import (
    HORIZONS,
    Prediction,
    PredictionStateError,
    UnknownHorizonError,
    score,
)
from btcguess.predictions.service import NoPriceError, PredictionService


# ── Helpers ──────────────────────────────────────────────────────────────


class _FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def _prediction(recommendation="up", predicted=100.0, end_time=600.0) -> Prediction:
    return Prediction(
        id=1,
        time=0.0,
        price=predicted,
        horizon="10m",
        recommendation=recommendation,
        predicted_price=predicted,
        end_time=end_time,
    )


def _feed(price=None) -> PriceFeed:
    feed = PriceFeed()
    if price is not None:
        feed.update(PriceSample(time=0.0, price=price))
    return feed


# ── Scoring & the record ─────────────────────────────────────────────────


class TestScore:
    def test_up(self):
        assert score("up", 100.0, 105.0) == "correct"
        assert score("up", 100.0, 95.0) == "incorrect"
        assert score("up", 100.0, 100.0) == "incorrect"

    def test_down(self):
        assert score("down", 100.0, 95.0) == "correct"
        assert score("down", 100.0, 105.0) == "incorrect"
        assert score("down", 100.0, 100.0) == "incorrect"

    def test_neutral(self):
        assert score("neutral", 100.0, 105.0) == "unknown"


class TestPrediction:
    def test_settle_correct(self):
        p = _prediction("up", 100.0)
        assert p.status == "open"
        assert p.settle(105.0, now=600.0) == "correct"
        assert p.actual_price == 105.0
        assert p.status == "settled"

    def test_settle_incorrect(self):
        p = _prediction("up", 100.0)
        assert p.settle(95.0, now=601.0) == "incorrect"

    def test_settle_before_due_rejected(self):
        p = _prediction(end_time=600.0)
        with pytest.raises(PredictionStateError):
            p.settle(105.0, now=599.9)
        assert p.result is None
        assert p.actual_price is None

    def test_settles_at_most_once(self):
        p = _prediction("up", 100.0)
        p.settle(105.0, now=600.0)
        with pytest.raises(PredictionStateError):
            p.settle(90.0, now=700.0)
        assert p.actual_price == 105.0
        assert p.result == "correct"

    def test_remaining_seconds(self):
        p = _prediction(end_time=600.0)
        assert p.remaining_seconds(100.0) == 500
        assert p.remaining_seconds(900.0) == 0
        p.settle(101.0, now=900.0)
        assert p.remaining_seconds(0.0) == 0

    def test_to_dict(self):
        data = _prediction().to_dict(now=0.0)
        assert data["status"] == "open"
        assert data["remaining_seconds"] == 600
        assert data["result"] is None


# ── Book & sweep ─────────────────────────────────────────────────────────


class TestPredictionBook:
    def test_create_sets_end_time(self):
        clock = _FakeClock()
        book = PredictionBook(clock=clock)
        p = book.create(price=94000.0, horizon="30m", recommendation="up")
        assert p.id == 1
        assert p.predicted_price == 94000.0
        assert p.end_time == clock.now + HORIZONS["30m"]
        assert book.open_count() == 1
        assert book.get(1) is p
        assert book.get(99) is None

    def test_ids_increment(self):
        book = PredictionBook(clock=_FakeClock())
        a = book.create(1.0, "10m", "up")
        b = book.create(2.0, "1h", "down")
        assert (a.id, b.id) == (1, 2)
        assert book.all() == [a, b]

    def test_unknown_horizon(self):
        book = PredictionBook(clock=_FakeClock())
        with pytest.raises(UnknownHorizonError):
            book.create(1.0, "5m", "up")
        assert book.all() == []

    def test_sweep_settles_only_due(self):
        clock = _FakeClock()
        book = PredictionBook(clock=clock)
        short = book.create(100.0, "10m", "up")
        long = book.create(100.0, "1d", "down")

        clock.now += HORIZONS["10m"]
        settled = book.settle_due(105.0)

        assert settled == [short]
        assert short.result == "correct"
        assert long.status == "open"
        assert book.open_count() == 1

    def test_sweep_without_price_is_noop(self):
        clock = _FakeClock()
        book = PredictionBook(clock=clock)
        p = book.create(100.0, "10m", "up")
        clock.now += 10_000
        assert book.settle_due(None) == []
        assert p.status == "open"

    def test_sweep_does_not_resettle(self):
        clock = _FakeClock()
        book = PredictionBook(clock=clock)
        p = book.create(100.0, "10m", "up")
        clock.now += HORIZONS["10m"]
        book.settle_due(105.0)
        clock.now += 60
        assert book.settle_due(50.0) == []
        assert p.actual_price == 105.0


class TestSettlementTask:
    def test_run_once_uses_feed_price(self):
        clock = _FakeClock()
        book = PredictionBook(clock=clock)
        p = book.create(100.0, "10m", "down")
        task = SettlementTask(book, _feed(95.0))

        assert task.run_once() == []
        clock.now += HORIZONS["10m"]
        assert task.run_once() == [p]
        assert p.result == "correct"
        assert task.cycle_count == 2

    @pytest.mark.asyncio
    async def test_run_loop_with_injected_sleep(self):
        clock = _FakeClock()
        book = PredictionBook(clock=clock)
        p = book.create(100.0, "10m", "up")
        sleeps = []

        async def _sleep(seconds):
            sleeps.append(seconds)
            clock.now += 300

        task = SettlementTask(book, _feed(101.0), interval=1.0, sleep=_sleep)
        await task.run(max_cycles=3)

        assert sleeps == [1.0, 1.0]
        assert p.result == "correct"
        assert p.actual_price == 101.0

    @pytest.mark.asyncio
    async def test_stop(self):
        book = PredictionBook(clock=_FakeClock())

        async def _sleep(seconds):
            task.stop()

        task = SettlementTask(book, _feed(), sleep=_sleep)
        await task.run()
        assert task.cycle_count == 1


# ── Heuristic ────────────────────────────────────────────────────────────


class TestAssessPrice:
    def test_levels(self):
        assert assess_price(94200, 94200, 94800).recommendation == "up"
        assert assess_price(94100, 94200, 94800).risk == "low"
        assert assess_price(94800, 94200, 94800).recommendation == "down"
        assert assess_price(95000, 94200, 94800).risk == "medium"
        mid = assess_price(94500, 94200, 94800)
        assert mid.recommendation == "neutral"
        assert mid.risk == "high"


# ── Service ──────────────────────────────────────────────────────────────


def _service(feed, analyzer, clock=None):
    book = PredictionBook(clock=clock or _FakeClock())
    return book, PredictionService(book, feed, analyzer, support=94200, resistance=94800)


class TestPredictionService:
    @pytest.mark.asyncio
    async def test_predict_with_analysis(self):
        analyzer = AsyncMock()
        analyzer.analyze.return_value = analyze_closes([94000, 94050, 94100, 94150])
        book, service = _service(_feed(94100.0), analyzer)

        p = await service.predict("1h")

        assert p.recommendation == "up"
        assert p.risk == "low"
        assert p.predicted_price == 94100.0
        assert p.analysis_detail.startswith("SMA=94075.00")
        assert "above the average" in p.analysis_detail
        assert book.all() == [p]

    @pytest.mark.asyncio
    async def test_suggestion_follows_current_price(self):
        analyzer = AsyncMock()
        analyzer.analyze.return_value = analyze_closes([100, 110, 90])
        _, service = _service(_feed(105.0), analyzer)

        p = await service.predict("10m")

        assert analyzer.analyze.return_value.recommendation == "down"
        assert p.analysis_detail.endswith(
            "current 105.00 is above the average, risk high, suggests up"
        )

    @pytest.mark.asyncio
    async def test_predict_falls_back_when_analysis_fails(self):
        analyzer = AsyncMock()
        analyzer.analyze.side_effect = AllSourcesFailedError(
            [SourceError("Binance", "returned 500")]
        )
        _, service = _service(_feed(94500.0), analyzer)

        p = await service.predict("10m")

        assert p.recommendation == "neutral"
        assert p.analysis_detail == (
            "price is in a neutral range, direction unclear, risk: high"
        )

    @pytest.mark.asyncio
    async def test_no_price(self):
        analyzer = AsyncMock()
        _, service = _service(_feed(), analyzer)
        with pytest.raises(NoPriceError):
            await service.predict("10m")
        analyzer.analyze.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_horizon(self):
        _, service = _service(_feed(94000.0), AsyncMock())
        with pytest.raises(UnknownHorizonError):
            await service.predict("2w")

    @pytest.mark.asyncio
    async def test_end_to_end_settlement(self):
        clock = _FakeClock()
        feed = _feed(95000.0)
        analyzer = AsyncMock()
        analyzer.analyze.return_value = analyze_closes([95000, 95000])
        book, service = _service(feed, analyzer, clock=clock)

        p = await service.predict("10m")
        assert p.recommendation == "down"

        task = SettlementTask(book, feed)
        feed.update(PriceSample(time=clock.now, price=94900.0))
        clock.now += HORIZONS["10m"] - 1
        assert task.run_once() == []
        clock.now += 1
        assert task.run_once() == [p]
        assert p.result == "correct"

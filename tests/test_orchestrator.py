"""Tests for the trading orchestrator tick loop."""

import asyncio
import time

import pytest

from conftest import BASE_TS, MINUTE_MS, flat_then, make_history
from regime_pilot.config import Config
from regime_pilot.engine import EngineConfig, PriceSource, StaticPriceFeed, TradingOrchestrator
from regime_pilot.exceptions import OrderExecutionError, PriceFeedError
from regime_pilot.models import (
    CloseReason,
    MarketRegime,
    OrderStatus,
    Position,
    ProfitEstimate,
    Side,
    Signal,
    SignalTier,
    SmartSizing,
    StrategyType,
)
from regime_pilot.risk import CapitalConfig, FeeModel, FeeSchedule

ZERO_FEES = FeeSchedule(maker_fee_pct=0, taker_fee_pct=0, funding_rate_pct=0, min_fee=0)


class FakeClock:

    def __init__(self, now: int = BASE_TS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = MINUTE_MS) -> None:
        self.now += ms


class FailingFeed:

    def get_prices(self, instruments):
        raise PriceFeedError("feed down")


class SlowFeed:

    def get_prices(self, instruments):
        time.sleep(0.3)
        return {}


class RejectingExecutor:

    def create_order(self, instrument, side, quantity, leverage):
        raise OrderExecutionError("exchange unavailable")

    def close_order(self, order_id):
        pass


def make_orchestrator(prices=None, clock=None, feed=None, **config_changes):
    config = EngineConfig(instruments=["BTC/USD"], **config_changes)
    feed = feed or StaticPriceFeed(prices or {})
    return TradingOrchestrator(config, feed, clock=clock or FakeClock())


def open_position(orchestrator, strategy_id, entry=100.0, quantity=0.001, side=Side.LONG):
    position = Position(
        id="order-manual",
        instrument="BTC/USD",
        side=side,
        entry_price=entry,
        current_price=entry,
        quantity=quantity,
        leverage=5,
        strategy=StrategyType.MOMENTUM,
        created_at=orchestrator._clock() - 1000,
        strategy_id=strategy_id,
    )
    return orchestrator.orders.add(position)


def preload(orchestrator, prices, instrument="BTC/USD"):
    start = orchestrator._clock() - len(prices) * MINUTE_MS
    for i, price in enumerate(prices):
        orchestrator.history.add_price_data(instrument, price, start + i * MINUTE_MS)


def baseline_signal(price=50000.0, confidence=70.0) -> Signal:
    return Signal(
        id="momentum-1",
        instrument="BTC/USD",
        side=Side.LONG,
        price=price,
        timestamp=BASE_TS,
        strategy=StrategyType.MOMENTUM,
        confidence=confidence,
        reason="test",
    )


class TestPriceIngestion:

    def test_records_fresh_prices(self):
        orchestrator = make_orchestrator({"BTC/USD": 50000.0})
        assert asyncio.run(orchestrator.run_tick())
        assert orchestrator.history.get_prices("BTC/USD") == [50000.0]
        assert orchestrator.get_prices() == {"BTC/USD": 50000.0}
        status = orchestrator.get_status()
        assert status.tick_count == 1
        assert status.last_update == BASE_TS

    @pytest.mark.parametrize("source", [PriceSource.STALE_CACHE, PriceSource.DEFAULT])
    def test_fallback_prices_not_recorded(self, source):
        feed = StaticPriceFeed()
        feed.set_price("BTC/USD", 50000.0, source)
        orchestrator = make_orchestrator(feed=feed)
        asyncio.run(orchestrator.run_tick())
        assert orchestrator.history.get_prices("BTC/USD") == []
        assert orchestrator.get_prices() == {"BTC/USD": 50000.0}

    def test_feed_failure_does_not_abort_tick(self):
        orchestrator = make_orchestrator(feed=FailingFeed())
        assert asyncio.run(orchestrator.run_tick())
        assert orchestrator.get_status().tick_count == 1

    def test_feed_timeout(self):
        orchestrator = make_orchestrator(feed=SlowFeed(), price_timeout_seconds=0.05)
        assert asyncio.run(orchestrator.run_tick())
        assert orchestrator.get_prices() == {}

    def test_strategy_instruments_are_fetched(self):
        orchestrator = make_orchestrator({"BTC/USD": 50000.0, "ETH/USD": 3000.0})
        orchestrator.add_strategy("ETH momentum", StrategyType.MOMENTUM, "ETH/USD")
        asyncio.run(orchestrator.run_tick())
        assert orchestrator.history.get_prices("ETH/USD") == [3000.0]

    def test_timing_patterns_rebuilt_from_full_history(self):
        orchestrator = make_orchestrator({"BTC/USD": 100.0})
        preload(orchestrator, flat_then(100.0, 99))
        asyncio.run(orchestrator.run_tick())
        assert orchestrator.timing.get_patterns("BTC/USD")


class TestSignalGeneration:

    def make(self, **config_changes):
        clock = FakeClock()
        config = EngineConfig(instruments=["BTC/USD"], **config_changes)
        orchestrator = TradingOrchestrator(
            config, StaticPriceFeed({"BTC/USD": 104.0}),
            fee_model=FeeModel(ZERO_FEES), clock=clock,
        )
        preload(orchestrator, flat_then(100.0, 20))
        return orchestrator

    def test_buffers_filtered_signals(self):
        orchestrator = self.make()
        orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        asyncio.run(orchestrator.run_tick())
        signals = orchestrator.get_signals()
        assert any(
            s.tier is SignalTier.BASELINE and s.strategy is StrategyType.MOMENTUM and s.side is Side.LONG
            for s in signals
        )
        assert all(s.confidence >= 60 for s in signals)
        assert orchestrator.orders.all() == []

    def test_disabled_strategy_is_skipped(self):
        orchestrator = self.make()
        strategy = orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        orchestrator.update_strategy(strategy.id, enabled=False)
        asyncio.run(orchestrator.run_tick())
        assert orchestrator.get_signals() == []
        assert orchestrator.get_status().active_strategies == 0

    def test_signal_buffer_is_bounded(self):
        orchestrator = self.make(signal_buffer_size=1)
        orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        asyncio.run(orchestrator.run_tick())
        assert len(orchestrator.get_signals()) == 1

    def test_auto_execute_respects_max_positions(self):
        orchestrator = self.make(auto_execute=True)
        strategy = orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        asyncio.run(orchestrator.run_tick())
        opened = orchestrator.orders.open_positions(strategy.id)
        assert len(opened) == min(strategy.max_positions, len(orchestrator.get_signals()))
        assert strategy.total_trades == len(opened)
        assert orchestrator.get_status().active_positions == len(opened)
        for position in opened:
            assert position.stop_loss_pct > 0
            assert position.take_profit_pct > 0


class TestPositionManagement:

    def test_stop_loss_closes_and_settles(self):
        orchestrator = make_orchestrator({"BTC/USD": 97.0})
        strategy = orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        position = open_position(orchestrator, strategy.id)

        asyncio.run(orchestrator.run_tick())

        assert position.status is OrderStatus.CLOSED
        assert position.close_reason is CloseReason.STOP_LOSS
        assert position.closed_at == BASE_TS
        assert position.pnl == pytest.approx(-0.015)
        assert position.realized_pnl == pytest.approx(-0.215)
        assert orchestrator.ledger.current_capital == pytest.approx(9.785)
        assert strategy.total_pnl == pytest.approx(-0.215)
        assert strategy.winning_trades == 0
        assert strategy.closed_trades == 1
        assert strategy.win_rate == 0.0
        assert orchestrator.get_status().active_positions == 0

    def test_take_profit_counts_as_win(self):
        orchestrator = make_orchestrator({"BTC/USD": 107.0})
        strategy = orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        position = open_position(orchestrator, strategy.id, quantity=1.0)

        asyncio.run(orchestrator.run_tick())

        assert position.close_reason is CloseReason.TAKE_PROFIT
        assert position.realized_pnl == pytest.approx(34.6)
        assert orchestrator.ledger.current_capital == pytest.approx(44.6)
        assert strategy.winning_trades == 1
        assert strategy.closed_trades == 1
        assert strategy.win_rate == 100.0

    def test_trailing_stop_after_peak(self):
        clock = FakeClock()
        feed = StaticPriceFeed({"BTC/USD": 100.5})
        orchestrator = make_orchestrator(feed=feed, clock=clock)
        strategy = orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        position = open_position(orchestrator, strategy.id)

        asyncio.run(orchestrator.run_tick())
        assert position.is_open
        assert position.peak_price == 100.5
        assert position.pnl == pytest.approx(0.5 * 0.001 * 5)
        assert position.current_price == 100.5

        clock.advance()
        feed.set_price("BTC/USD", 100.2)
        asyncio.run(orchestrator.run_tick())
        assert position.close_reason is CloseReason.TRAILING_STOP

    def test_stale_price_still_protects(self):
        feed = StaticPriceFeed()
        feed.set_price("BTC/USD", 97.0, PriceSource.STALE_CACHE)
        orchestrator = make_orchestrator(feed=feed)
        position = open_position(orchestrator, None)
        asyncio.run(orchestrator.run_tick())
        assert position.close_reason is CloseReason.STOP_LOSS

    def test_default_price_is_ignored(self):
        feed = StaticPriceFeed()
        feed.set_price("BTC/USD", 97.0, PriceSource.DEFAULT)
        orchestrator = make_orchestrator(feed=feed)
        position = open_position(orchestrator, None)
        asyncio.run(orchestrator.run_tick())
        assert position.is_open
        assert position.current_price == 100.0

    def test_manual_close(self):
        orchestrator = make_orchestrator()
        position = open_position(orchestrator, None)
        closed = orchestrator.close_order(position.id)
        assert closed is position
        assert position.close_reason is CloseReason.MANUAL
        assert position.realized_pnl == pytest.approx(-0.2)
        assert orchestrator.ledger.current_capital == pytest.approx(9.8)
        assert orchestrator.close_order(position.id) is None

    def test_close_unknown_order(self):
        with pytest.raises(KeyError):
            make_orchestrator().close_order("order-missing")


class TestCreateOrder:

    def test_opens_position_with_sized_leverage(self):
        orchestrator = make_orchestrator()
        strategy = orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        position = orchestrator.create_order_from_signal(baseline_signal(), strategy.id)
        assert position.is_open
        assert position.leverage == 15
        assert position.strategy_id == strategy.id
        assert position.signal_confidence == 70.0
        assert position.stop_loss_pct > 0 and position.take_profit_pct > 0
        assert orchestrator.executor.orders[position.id]["open"]
        assert strategy.total_trades == 1
        assert strategy.last_signal_at == BASE_TS
        assert strategy.closed_trades == 0

    def test_max_positions(self):
        orchestrator = make_orchestrator()
        strategy = orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD",
                                             max_positions=1)
        assert orchestrator.create_order_from_signal(baseline_signal(), strategy.id) is not None
        assert orchestrator.create_order_from_signal(baseline_signal(), strategy.id) is None

    def test_smart_signal_uses_its_sizing(self):
        orchestrator = make_orchestrator()
        strategy = orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        signal = Signal(
            id="trend-long-1",
            instrument="BTC/USD",
            side=Side.LONG,
            price=50000.0,
            timestamp=BASE_TS,
            strategy=StrategyType.MOMENTUM,
            confidence=85.0,
            reason="test",
            tier=SignalTier.SMART,
            estimate=ProfitEstimate(9.0, 2.5, 70, 51000.0),
            sizing=SmartSizing(MarketRegime.TRENDING_UP, 10, 0.001),
        )
        position = orchestrator.create_order_from_signal(signal, strategy.id)
        assert position.leverage == 10
        assert position.quantity == 0.001

    def test_unprofitable_at_size(self):
        orchestrator = make_orchestrator()
        strategy = orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        # a 1% move on a 0.02 max-size position at price 10 cannot cover minimum fees
        assert orchestrator.create_order_from_signal(baseline_signal(price=10.0), strategy.id) is None
        assert strategy.total_trades == 0

    def test_blocked_by_timing(self):
        clock = FakeClock(BASE_TS + 30 * MINUTE_MS)
        orchestrator = make_orchestrator(clock=clock)
        orchestrator.timing.analyze_historical_patterns("BTC/USD", make_history(flat_then(100.0, 100)))
        strategy = orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        assert orchestrator.create_order_from_signal(baseline_signal(), strategy.id) is None

    def test_executor_rejection_tracks_locally(self):
        orchestrator = TradingOrchestrator(
            EngineConfig(instruments=["BTC/USD"]), StaticPriceFeed(), RejectingExecutor(),
            clock=FakeClock(),
        )
        strategy = orchestrator.add_strategy("BTC momentum", StrategyType.MOMENTUM, "BTC/USD")
        position = orchestrator.create_order_from_signal(baseline_signal(), strategy.id)
        assert position.id.startswith("order-")
        assert orchestrator.orders.get(position.id) is position

    def test_unknown_strategy(self):
        with pytest.raises(KeyError):
            make_orchestrator().create_order_from_signal(baseline_signal(), "strategy-missing")


class TestLoopControl:

    def test_overlapping_tick_is_skipped(self):
        orchestrator = make_orchestrator({"BTC/USD": 50000.0})

        async def scenario():
            async with orchestrator._tick_lock:
                return await orchestrator.run_tick()

        assert asyncio.run(scenario()) is False
        status = orchestrator.get_status()
        assert status.skipped_ticks == 1
        assert status.tick_count == 0

    def test_start_and_stop(self):
        orchestrator = make_orchestrator({"BTC/USD": 50000.0}, tick_interval_seconds=0.01)

        async def scenario():
            await orchestrator.start()
            assert orchestrator.is_running
            await asyncio.sleep(0.05)
            await orchestrator.stop()

        asyncio.run(scenario())
        status = orchestrator.get_status()
        assert not status.is_running
        assert status.tick_count >= 1

    def test_requires_price_feed(self):
        with pytest.raises(ValueError):
            TradingOrchestrator(EngineConfig(), None)


class TestStrategies:

    def test_add_update_remove(self):
        orchestrator = make_orchestrator()
        strategy = orchestrator.add_strategy("BTC rsi", StrategyType.RSI, "BTC/USD", min_confidence=75.0)
        assert strategy.id.startswith("strategy-")
        assert strategy.created_at == BASE_TS
        assert strategy.min_confidence == 75.0
        orchestrator.update_strategy(strategy.id, max_positions=5)
        assert orchestrator.strategies.get(strategy.id).max_positions == 5
        assert orchestrator.remove_strategy(strategy.id) is strategy
        assert orchestrator.remove_strategy(strategy.id) is None


class TestFromConfig:

    def test_components_share_config(self):
        config = Config()
        config.capital = CapitalConfig(initial_capital=250.0)
        config.fees = FeeSchedule(min_fee=0.05)
        orchestrator = TradingOrchestrator.from_config(config, StaticPriceFeed(), clock=FakeClock())
        assert orchestrator.config is config.engine
        assert orchestrator.ledger.current_capital == 250.0
        assert orchestrator.sizer.ledger is orchestrator.ledger
        assert orchestrator.fee_model.schedule.min_fee == 0.05
        assert orchestrator.smart.fee_model is orchestrator.fee_model
        assert orchestrator.profit_filter.fee_model is orchestrator.fee_model

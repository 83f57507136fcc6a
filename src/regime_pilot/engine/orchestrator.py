"""Trading Orchestrator - the tick loop.

Each tick pulls prices, extends history, refreshes timing patterns, runs
the three signal tiers through the profitability filter, re-protects open
positions and closes the ones whose levels were breached.
"""

import asyncio
import dataclasses
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Deque, Dict, List, Optional, Tuple

from regime_pilot.engine.execution import PaperOrderExecutor
from regime_pilot.engine.feeds import PriceResult, PriceSource
from regime_pilot.engine.repositories import OrderRepository, StrategyRepository
from regime_pilot.exceptions import ConfigValidationError, OrderExecutionError, PriceFeedError
from regime_pilot.indicators import IndicatorCalculator
from regime_pilot.market.history import PriceHistoryStore
from regime_pilot.market.regime import RegimeDetector
from regime_pilot.market.timing import HistoricalTimingAnalyzer
from regime_pilot.models import (
    BotStatus,
    CloseReason,
    OrderStatus,
    Position,
    Signal,
    StrategyType,
    TradingStrategy,
    new_id,
)
from regime_pilot.risk.capital import CapitalLedger
from regime_pilot.risk.fees import FeeModel
from regime_pilot.risk.leverage import AdaptiveLeverageSizer
from regime_pilot.risk.protection import DynamicProtectionEngine
from regime_pilot.strategy.aggressive import AggressiveSignalGenerator
from regime_pilot.strategy.baseline import BaselineSignalGenerator
from regime_pilot.strategy.filter import ProfitabilityFilter
from regime_pilot.strategy.smart import SmartSignalGenerator

if TYPE_CHECKING:
    from regime_pilot.config import Config

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000


@dataclass
class EngineConfig:
    """Tick loop configuration."""
    instruments: List[str] = field(default_factory=lambda: [
        "BTC/USD", "ETH/USD", "SOL/USD", "XRP/USD", "HYPE/USD"
    ])
    tick_interval_seconds: float = 5.0
    price_timeout_seconds: float = 10.0
    history_capacity: int = 100
    signal_buffer_size: int = 150
    auto_execute: bool = False

    def validate(self) -> None:
        errors: List[str] = []
        if self.tick_interval_seconds <= 0:
            errors.append("tick_interval_seconds must be > 0")
        if self.price_timeout_seconds <= 0:
            errors.append("price_timeout_seconds must be > 0")
        if self.history_capacity < 1:
            errors.append("history_capacity must be >= 1")
        if self.signal_buffer_size < 1:
            errors.append("signal_buffer_size must be >= 1")
        if errors:
            raise ConfigValidationError("\n".join(errors))


def _now_ms() -> int:
    return int(time.time() * 1000)


def _to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


class TradingOrchestrator:
    """Coordinates every component through the per-tick pipeline.

    Owns the price history, capital ledger, timing patterns, strategies and
    positions; nothing else writes to them. Ticks never overlap: a tick
    requested while another is running is skipped.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        price_feed=None,
        executor=None,
        *,
        fee_model: Optional[FeeModel] = None,
        ledger: Optional[CapitalLedger] = None,
        history: Optional[PriceHistoryStore] = None,
        detector: Optional[RegimeDetector] = None,
        sizer: Optional[AdaptiveLeverageSizer] = None,
        protection: Optional[DynamicProtectionEngine] = None,
        timing: Optional[HistoricalTimingAnalyzer] = None,
        baseline: Optional[BaselineSignalGenerator] = None,
        aggressive: Optional[AggressiveSignalGenerator] = None,
        smart: Optional[SmartSignalGenerator] = None,
        profit_filter: Optional[ProfitabilityFilter] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        """Initialize the orchestrator.

        Args:
            config: Tick loop configuration
            price_feed: Object with ``get_prices(instruments) -> Dict[str, PriceResult]``
            executor: Object with ``create_order`` / ``close_order`` (paper by default)
            clock: Returns the current time in epoch milliseconds
        """
        self.config = config or EngineConfig()
        self.config.validate()
        if price_feed is None:
            raise ValueError("price_feed is required")
        self.price_feed = price_feed
        self.executor = executor or PaperOrderExecutor()
        self._clock = clock

        calculator = IndicatorCalculator()
        self.fee_model = fee_model or FeeModel()
        self.ledger = ledger or CapitalLedger()
        self.history = history or PriceHistoryStore(self.config.history_capacity)
        self.detector = detector or RegimeDetector(calculator)
        self.sizer = sizer or AdaptiveLeverageSizer(self.ledger, calculator=calculator)
        self.protection = protection or DynamicProtectionEngine()
        self.timing = timing or HistoricalTimingAnalyzer()
        self.baseline = baseline or BaselineSignalGenerator(calculator)
        self.aggressive = aggressive or AggressiveSignalGenerator(self.fee_model, calculator=calculator)
        self.smart = smart or SmartSignalGenerator(self.fee_model, self.detector, calculator=calculator)
        self.profit_filter = profit_filter or ProfitabilityFilter(self.fee_model, self.sizer)

        self.strategies = StrategyRepository()
        self.orders = OrderRepository()
        self.status = BotStatus()
        self._signals: Deque[Signal] = deque(maxlen=self.config.signal_buffer_size)
        self._prices: Dict[str, PriceResult] = {}

        self._tick_lock = asyncio.Lock()
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: "Config", price_feed, executor=None, **kwargs) -> "TradingOrchestrator":
        """Build an orchestrator with every component configured from ``config``."""
        calculator = IndicatorCalculator()
        fee_model = FeeModel(config.fees)
        ledger = CapitalLedger(config.capital)
        detector = RegimeDetector(calculator)
        sizer = AdaptiveLeverageSizer(ledger, config.leverage, calculator)
        return cls(
            config.engine,
            price_feed,
            executor,
            fee_model=fee_model,
            ledger=ledger,
            detector=detector,
            sizer=sizer,
            protection=DynamicProtectionEngine(config.protection),
            timing=HistoricalTimingAnalyzer(config.timing),
            baseline=BaselineSignalGenerator(calculator),
            aggressive=AggressiveSignalGenerator(fee_model, config.aggressive, calculator),
            smart=SmartSignalGenerator(fee_model, detector, config.smart, calculator),
            profit_filter=ProfitabilityFilter(fee_model, sizer, config.filter),
            **kwargs,
        )

    # ==================== Loop Control ====================

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start ticking every ``tick_interval_seconds`` in a background task."""
        if self._running:
            return
        self._running = True
        self.status.is_running = True
        logger.info("=" * 50)
        logger.info("🚀 Regime Pilot starting")
        logger.info(f"💰 Capital: ${self.ledger.current_capital:,.2f}")
        logger.info(f"🔍 Instruments: {', '.join(self._instruments())}")
        logger.info(f"⏱️  Tick interval: {self.config.tick_interval_seconds}s")
        logger.info(f"🤖 Auto execute: {self.config.auto_execute}")
        logger.info("=" * 50)
        self._loop_task = asyncio.create_task(self._tick_loop())

    async def stop(self) -> None:
        """Stop the loop, letting any in-flight tick finish first."""
        if not self._running:
            return
        logger.info("Stopping Regime Pilot...")
        self._running = False
        self.status.is_running = False
        async with self._tick_lock:
            if self._loop_task is not None:
                self._loop_task.cancel()
                try:
                    await self._loop_task
                except asyncio.CancelledError:
                    pass
                self._loop_task = None
        logger.info("Regime Pilot stopped")

    async def _tick_loop(self) -> None:
        while self._running:
            try:
                await self.run_tick()
            except Exception as e:
                logger.error(f"❌ Tick error: {e}", exc_info=True)
            await asyncio.sleep(self.config.tick_interval_seconds)

    # ==================== Tick ====================

    async def run_tick(self) -> bool:
        """Run one tick.

        Returns:
            False when the tick was skipped because another was running
        """
        if self._tick_lock.locked():
            self.status.skipped_ticks += 1
            logger.warning("⏭️ Tick skipped: previous tick still running")
            return False

        async with self._tick_lock:
            now = self._clock()
            prices = await self._fetch_prices()
            self._record_prices(prices, now)
            self._refresh_timing_patterns(prices)
            candidates = self._generate_signals(prices)
            self._update_positions(prices, now)
            if self.config.auto_execute:
                for signal, strategy in candidates:
                    self._auto_execute(signal, strategy)
            self._refresh_status(now)
        return True

    def _instruments(self) -> List[str]:
        instruments = list(self.config.instruments)
        extra = [s.instrument for s in self.strategies.all()]
        extra += [p.instrument for p in self.orders.open_positions()]
        for instrument in extra:
            if instrument not in instruments:
                instruments.append(instrument)
        return instruments

    async def _fetch_prices(self) -> Dict[str, PriceResult]:
        instruments = self._instruments()
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.price_feed.get_prices, instruments),
                timeout=self.config.price_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Price fetch timed out after {self.config.price_timeout_seconds}s")
        except PriceFeedError as e:
            logger.error(f"❌ Price fetch failed: {e}")
        return {}

    def _record_prices(self, prices: Dict[str, PriceResult], now: int) -> None:
        for instrument, result in prices.items():
            self._prices[instrument] = result
            if not result.is_fresh:
                logger.warning(f"⚠️ {instrument}: {result.source.value} price {result.price}, not recorded")
                continue
            try:
                self.history.add_price_data(instrument, result.price, now)
            except ValueError as e:
                logger.error(f"{instrument}: price rejected: {e}")

    def _refresh_timing_patterns(self, prices: Dict[str, PriceResult]) -> None:
        for instrument, result in prices.items():
            if not result.is_fresh:
                continue
            history = self.history.get_history(instrument)
            if len(history) >= self.timing.config.min_points:
                self.timing.analyze_historical_patterns(instrument, history)

    def _generate_signals(self, prices: Dict[str, PriceResult]) -> List[Tuple[Signal, TradingStrategy]]:
        accepted: List[Tuple[Signal, TradingStrategy]] = []
        for strategy in self.strategies.enabled():
            result = prices.get(strategy.instrument)
            if result is None or not result.is_fresh:
                continue
            try:
                signals = self.generate_strategy_signals(strategy)
            except Exception as e:
                logger.error(f"❌ Signal generation failed for {strategy.name}: {e}", exc_info=True)
                continue
            self._signals.extend(signals)
            accepted.extend((signal, strategy) for signal in signals)
            for signal in signals:
                logger.info(
                    f"✨ {signal.instrument}: {signal.side.value.upper()} {signal.strategy.value} "
                    f"[{signal.tier.value}] confidence={signal.confidence:.1f}"
                )
        return accepted

    def generate_strategy_signals(self, strategy: TradingStrategy) -> List[Signal]:
        """Run every tier for one strategy and keep what passes the filter."""
        history = self.history.get_history(strategy.instrument)
        candidates = (
            self.smart.generate_signals(strategy.instrument, history)
            + self.aggressive.generate_signals(strategy.instrument, history)
            + self.baseline.generate_signals(strategy.instrument, history, [strategy.type])
        )
        return self.profit_filter.filter(candidates, strategy.min_confidence, history)

    def _update_positions(self, prices: Dict[str, PriceResult], now: int) -> None:
        for position in self.orders.open_positions():
            result = prices.get(position.instrument)
            if result is None or result.source is PriceSource.DEFAULT:
                continue
            try:
                self._mark_position(position, result.price, now)
            except Exception as e:
                logger.error(f"❌ Failed to update {position.id}: {e}", exc_info=True)

    def _mark_position(self, position: Position, price: float, now: int) -> None:
        history = self.history.get_history(position.instrument)
        analysis = self.sizer.analyze_market(position.instrument, history)
        analysis = analysis.with_confidence(position.signal_confidence)
        levels = self.protection.update_order_levels(position, price, analysis, history)

        position.current_price = price
        position.pnl = position.calc_pnl(price)
        position.pnl_percentage = position.calc_pnl_pct(price)
        position.stop_loss_pct = levels.stop_loss_pct
        position.take_profit_pct = levels.take_profit_pct

        decision = self.protection.should_close_order(position, price, levels)
        if decision.should_close:
            self._settle(position, price, decision.reason, now)
        else:
            position.update_peak(price)

    def _settle(self, position: Position, exit_price: float, reason: CloseReason, now: int) -> None:
        """Close a position and apply its net P&L in one step."""
        hours_open = max(0, now - position.created_at) / MS_PER_HOUR
        fees = self.fee_model.calculate_fees(
            position.entry_price, exit_price, position.quantity, position.leverage,
            position.side, hours_open=hours_open,
        )

        position.status = OrderStatus.CLOSED
        position.closed_at = now
        position.close_reason = reason
        position.current_price = exit_price
        position.pnl = fees.gross_pnl
        position.pnl_percentage = position.calc_pnl_pct(exit_price)
        position.realized_pnl = fees.net_pnl

        self.ledger.update_capital(fees.net_pnl)

        strategy = self.strategies.get(position.strategy_id) if position.strategy_id else None
        if strategy is not None:
            strategy.total_pnl += fees.net_pnl
            strategy.closed_trades += 1
            if fees.net_pnl > 0:
                strategy.winning_trades += 1

        try:
            self.executor.close_order(position.id)
        except OrderExecutionError as e:
            logger.warning(f"Executor could not close {position.id}: {e}")

        icon = "💰" if fees.net_pnl > 0 else "🛑"
        logger.info(
            f"{icon} {position.instrument}: closed {position.side.value} ({reason.value}) "
            f"@ {exit_price:.4f} net={fees.net_pnl:+.4f} fees={fees.total_fees:.4f}"
        )

    def _auto_execute(self, signal: Signal, strategy: TradingStrategy) -> None:
        try:
            self.create_order_from_signal(signal, strategy.id)
        except Exception as e:
            logger.error(f"❌ Auto execution failed for {signal.id}: {e}", exc_info=True)

    def _refresh_status(self, now: int) -> None:
        positions = self.orders.all()
        self.status.active_strategies = len(self.strategies.enabled())
        self.status.active_positions = len(self.orders.open_positions())
        self.status.total_pnl = sum(p.pnl or 0.0 for p in positions)
        self.status.total_pnl_percentage = (
            sum(p.pnl_percentage or 0.0 for p in positions) / len(positions) if positions else 0.0
        )
        self.status.last_update = now
        self.status.tick_count += 1

    # ==================== Orders ====================

    def create_order_from_signal(self, signal: Signal, strategy_id: str) -> Optional[Position]:
        """Open a position from an accepted signal.

        Args:
            signal: Signal to act on
            strategy_id: Strategy the position is attributed to

        Returns:
            The new Position, or None when timing, position limits or fees
            rule the trade out

        Raises:
            KeyError: If the strategy does not exist
        """
        strategy = self.strategies.get(strategy_id)
        if strategy is None:
            raise KeyError(f"Unknown strategy: {strategy_id}")
        now = self._clock()

        verdict = self.timing.is_good_time_to_trade(signal.instrument, _to_datetime(now))
        if self.timing.should_block_entry(verdict):
            logger.info(f"⏸️ {signal.instrument}: entry blocked - {verdict.reason}")
            return None

        if len(self.orders.open_positions(strategy.id)) >= strategy.max_positions:
            logger.info(f"⏸️ {strategy.name}: max positions ({strategy.max_positions}) reached")
            return None

        history = self.history.get_history(signal.instrument)
        analysis = self.sizer.analyze_market(signal.instrument, history)

        if signal.sizing is not None:
            leverage = signal.optimal_leverage
            quantity = signal.optimal_size
        else:
            leverage = self.sizer.calculate_optimal_leverage(signal, analysis)
            quantity = self.sizer.calculate_trade_size(signal, analysis, signal.price, leverage).quantity

        if not self.profit_filter.evaluate_at_size(signal, quantity, leverage):
            logger.info(
                f"⏸️ {signal.instrument}: not profitable after fees at {quantity:.6f} x{leverage}"
            )
            return None

        draft = Position(
            id="draft",
            instrument=signal.instrument,
            side=signal.side,
            entry_price=signal.price,
            current_price=signal.price,
            quantity=quantity,
            leverage=leverage,
            strategy=signal.strategy,
            created_at=now,
            strategy_id=strategy.id,
            signal_confidence=signal.confidence,
            peak_price=signal.price,
        )
        levels = self.protection.calculate_dynamic_levels(
            draft, signal.price, analysis.with_confidence(signal.confidence), history
        )

        try:
            order_id = self.executor.create_order(signal.instrument, signal.side, quantity, leverage)
        except OrderExecutionError as e:
            logger.error(f"❌ Executor rejected order, tracking locally: {e}")
            order_id = new_id("order")

        position = dataclasses.replace(
            draft,
            id=order_id,
            stop_loss_pct=levels.stop_loss_pct,
            take_profit_pct=levels.take_profit_pct,
        )
        self.orders.add(position)
        strategy.last_signal_at = now
        strategy.total_trades += 1

        logger.info(
            f"🎉 {position.instrument}: opened {position.side.value.upper()} {quantity:.6f} "
            f"@ {position.entry_price:.4f} x{leverage} "
            f"(SL {levels.stop_loss_pct:.2f}%, TP {levels.take_profit_pct:.2f}%)"
        )
        return position

    def close_order(self, order_id: str) -> Optional[Position]:
        """Close an open position manually at its last marked price.

        Returns:
            The closed Position, or None if it was not open

        Raises:
            KeyError: If the position does not exist
        """
        position = self.orders.get(order_id)
        if position is None:
            raise KeyError(f"Unknown order: {order_id}")
        if not position.is_open:
            return None
        self._settle(position, position.current_price, CloseReason.MANUAL, self._clock())
        return position

    # ==================== Strategies ====================

    def add_strategy(
        self,
        name: str,
        strategy_type: StrategyType,
        instrument: str,
        **settings,
    ) -> TradingStrategy:
        """Register a strategy; ``settings`` override TradingStrategy defaults."""
        strategy = TradingStrategy(
            id=new_id("strategy"),
            name=name,
            type=strategy_type,
            instrument=instrument,
            created_at=self._clock(),
            **settings,
        )
        self.strategies.add(strategy)
        logger.info(f"➕ Strategy added: {name} ({strategy_type.value} on {instrument})")
        return strategy

    def update_strategy(self, strategy_id: str, **changes) -> TradingStrategy:
        return self.strategies.update(strategy_id, **changes)

    def remove_strategy(self, strategy_id: str) -> Optional[TradingStrategy]:
        removed = self.strategies.remove(strategy_id)
        if removed:
            logger.info(f"➖ Strategy removed: {removed.name}")
        return removed

    # ==================== Queries ====================

    def get_status(self) -> BotStatus:
        return dataclasses.replace(self.status, is_running=self._running)

    def get_signals(self) -> List[Signal]:
        return list(self._signals)

    def get_orders(self) -> List[Position]:
        return self.orders.all()

    def get_prices(self) -> Dict[str, float]:
        return {instrument: result.price for instrument, result in self._prices.items()}

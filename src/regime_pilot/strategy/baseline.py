"""Baseline signal generators: momentum, RSI, mean reversion and breakout.

Baseline signals carry no profitability estimate; they are checked against
fees downstream by the ProfitabilityFilter.
"""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from regime_pilot.indicators import IndicatorCalculator
from regime_pilot.models import PricePoint, Side, Signal, SignalTier, StrategyType, new_id

logger = logging.getLogger(__name__)


class BaselineSignalGenerator:
    """Classic single-indicator strategies, one optional signal each.

    Thresholds:
    - Momentum: 5-point change >= 2% and 20-point change >= 3% (mirrored for shorts)
    - RSI(14): < 30 oversold, > 70 overbought
    - Mean reversion: price more than 3% away from SMA20
    - Breakout: within 2% of the 20-point high/low and moving through it
    """

    MOMENTUM_SHORT_PCT = 2.0
    MOMENTUM_LONG_PCT = 3.0
    RSI_OVERSOLD = 30.0
    RSI_OVERBOUGHT = 70.0
    MEAN_REVERSION_PCT = 3.0
    BREAKOUT_CONFIDENCE = 75.0

    def __init__(self, calculator: Optional[IndicatorCalculator] = None):
        self.calculator = calculator or IndicatorCalculator()
        self._checks: Dict[StrategyType, Callable[[str, Sequence[PricePoint]], Optional[Signal]]] = {
            StrategyType.MOMENTUM: self.check_momentum,
            StrategyType.RSI: self.check_rsi,
            StrategyType.MEAN_REVERSION: self.check_mean_reversion,
            StrategyType.BREAKOUT: self.check_breakout,
        }

    def _signal(
        self,
        instrument: str,
        history: Sequence[PricePoint],
        side: Side,
        strategy: StrategyType,
        confidence: float,
        reason: str,
    ) -> Signal:
        last = history[-1]
        return Signal(
            id=new_id(strategy.value),
            instrument=instrument,
            side=side,
            price=last.price,
            timestamp=last.timestamp,
            strategy=strategy,
            confidence=confidence,
            reason=reason,
            tier=SignalTier.BASELINE,
        )

    def check_momentum(self, instrument: str, history: Sequence[PricePoint]) -> Optional[Signal]:
        """Fire on a strong move over both the last 5 and 20 points."""
        if len(history) < 20:
            return None

        prices = [p.price for p in history]
        change5 = self.calculator.pct_change_from(prices, 5)
        change20 = self.calculator.pct_change_from(prices, 20)
        confidence = min(90.0, 50 + abs(change5) * 5)

        if change5 >= self.MOMENTUM_SHORT_PCT and change20 >= self.MOMENTUM_LONG_PCT:
            return self._signal(
                instrument, history, Side.LONG, StrategyType.MOMENTUM, confidence,
                f"Bullish momentum: {change5:+.2f}% (5), {change20:+.2f}% (20)",
            )
        if change5 <= -self.MOMENTUM_SHORT_PCT and change20 <= -self.MOMENTUM_LONG_PCT:
            return self._signal(
                instrument, history, Side.SHORT, StrategyType.MOMENTUM, confidence,
                f"Bearish momentum: {change5:+.2f}% (5), {change20:+.2f}% (20)",
            )
        return None

    def check_rsi(self, instrument: str, history: Sequence[PricePoint]) -> Optional[Signal]:
        """Fire on oversold (long) or overbought (short) RSI."""
        if len(history) < self.calculator.rsi_period + 1:
            return None

        rsi = self.calculator.rsi([p.price for p in history])
        if rsi < self.RSI_OVERSOLD:
            return self._signal(
                instrument, history, Side.LONG, StrategyType.RSI, 85 - rsi,
                f"RSI oversold: {rsi:.2f}",
            )
        if rsi > self.RSI_OVERBOUGHT:
            return self._signal(
                instrument, history, Side.SHORT, StrategyType.RSI, rsi - 30,
                f"RSI overbought: {rsi:.2f}",
            )
        return None

    def check_mean_reversion(self, instrument: str, history: Sequence[PricePoint]) -> Optional[Signal]:
        if len(history) < 20:
            return None

        prices = [p.price for p in history]
        sma20 = self.calculator.sma(prices, 20)
        deviation = (prices[-1] - sma20) / sma20 * 100
        confidence = min(85.0, 50 + abs(deviation) * 5)

        if deviation < -self.MEAN_REVERSION_PCT:
            return self._signal(
                instrument, history, Side.LONG, StrategyType.MEAN_REVERSION, confidence,
                f"Price {deviation:.2f}% below SMA20",
            )
        if deviation > self.MEAN_REVERSION_PCT:
            return self._signal(
                instrument, history, Side.SHORT, StrategyType.MEAN_REVERSION, confidence,
                f"Price {deviation:.2f}% above SMA20",
            )
        return None

    def check_breakout(self, instrument: str, history: Sequence[PricePoint]) -> Optional[Signal]:
        if len(history) < 20:
            return None

        prices = [p.price for p in history]
        current = prices[-1]
        previous = prices[-2]
        recent = prices[-20:]
        high = max(recent)
        low = min(recent)

        if current > high * 0.98 and current > previous:
            return self._signal(
                instrument, history, Side.LONG, StrategyType.BREAKOUT, self.BREAKOUT_CONFIDENCE,
                f"Bullish breakout through resistance at {high:.2f}",
            )
        if current < low * 1.02 and current < previous:
            return self._signal(
                instrument, history, Side.SHORT, StrategyType.BREAKOUT, self.BREAKOUT_CONFIDENCE,
                f"Bearish breakout through support at {low:.2f}",
            )
        return None

    def generate_signals(
        self,
        instrument: str,
        history: Sequence[PricePoint],
        strategy_types: Iterable[StrategyType],
    ) -> List[Signal]:
        """Run the requested strategies and collect the signals they emit."""
        signals = []
        for strategy_type in strategy_types:
            signal = self._checks[strategy_type](instrument, history)
            if signal is not None:
                logger.debug(f"{instrument} baseline {strategy_type.value}: {signal.side.value} "
                             f"({signal.confidence:.1f})")
                signals.append(signal)
        return signals

"""Regime Detector - price-action market regime classification.

Classifies the market into one of five regimes, evaluated in priority order:
- STRONG_IMPULSE: fast, accelerating move over the last 3-5 points
- BREAKOUT: current price beyond the prior 20-point high/low
- RANGING: tight 30-point range with low per-step movement
- TRENDING_UP / TRENDING_DOWN: price and SMA20/50/100 stacked in order
- default RANGING with neutral confidence
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from regime_pilot.indicators import IndicatorCalculator
from regime_pilot.models import MarketRegime, PricePoint, RegimeAnalysis, Side, clamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _TrendAnalysis:
    direction: Optional[Side]
    strength: float
    confidence: float
    support: float
    resistance: float


@dataclass(frozen=True)
class _RangeAnalysis:
    is_ranging: bool
    confidence: float
    strength: float
    support: float
    resistance: float


@dataclass(frozen=True)
class _BreakoutAnalysis:
    is_breakout: bool
    confidence: float = 0.0
    strength: float = 0.0
    direction: Optional[Side] = None


@dataclass(frozen=True)
class _ImpulseAnalysis:
    strength: float = 0.0
    direction: Optional[Side] = None


class RegimeDetector:
    """Detects the current market regime from a price window.

    Thresholds:
    - Minimum history: 50 points
    - Impulse: momentum3 > 1%, momentum5 > 0.8%, accelerating; strength > 0.7
    - Breakout: confidence > 70
    - Range: range < 5% of average and mean absolute return < 2%
    - Trend: strength > 0.6 with a stacked SMA ordering
    """

    MIN_POINTS = 50
    IMPULSE_THRESHOLD = 0.7
    BREAKOUT_CONFIDENCE = 70.0
    RANGE_CONFIDENCE = 60.0
    TREND_THRESHOLD = 0.6

    BREAKOUT_WINDOW = 20
    RANGE_WINDOW = 30
    MAX_RANGE_PCT = 5.0
    MAX_RANGE_VOLATILITY = 0.02
    TOUCH_TOLERANCE = 0.01

    def __init__(self, calculator: Optional[IndicatorCalculator] = None):
        self.calculator = calculator or IndicatorCalculator()

    def detect_regime(self, instrument: str, history: Sequence[PricePoint]) -> RegimeAnalysis:
        """Classify the market regime for an instrument.

        Args:
            instrument: Instrument symbol
            history: Price history, oldest first

        Returns:
            RegimeAnalysis for the highest-priority regime that applies;
            ``sufficient_data`` is False when fewer than 50 points exist
        """
        if len(history) < self.MIN_POINTS:
            return RegimeAnalysis(
                regime=MarketRegime.RANGING,
                confidence=50.0,
                strength=0.5,
                sufficient_data=False,
            )

        prices = [p.price for p in history]
        trend = self._analyze_trend(prices)
        rng = self._analyze_range(prices)
        breakout = self._analyze_breakout(prices)
        impulse = self._analyze_impulse(prices)

        if impulse.strength > self.IMPULSE_THRESHOLD:
            analysis = RegimeAnalysis(
                regime=MarketRegime.STRONG_IMPULSE,
                confidence=85 + impulse.strength * 15,
                strength=impulse.strength,
                trend_direction=impulse.direction,
                impulse_strength=impulse.strength,
                support_level=rng.support,
                resistance_level=rng.resistance,
            )
        elif breakout.is_breakout and breakout.confidence > self.BREAKOUT_CONFIDENCE:
            analysis = RegimeAnalysis(
                regime=MarketRegime.BREAKOUT,
                confidence=breakout.confidence,
                strength=breakout.strength,
                trend_direction=breakout.direction,
                support_level=rng.support,
                resistance_level=rng.resistance,
            )
        elif rng.is_ranging and rng.confidence > self.RANGE_CONFIDENCE:
            analysis = RegimeAnalysis(
                regime=MarketRegime.RANGING,
                confidence=rng.confidence,
                strength=rng.strength,
                range_top=rng.resistance,
                range_bottom=rng.support,
                support_level=rng.support,
                resistance_level=rng.resistance,
            )
        elif trend.strength > self.TREND_THRESHOLD and trend.direction is not None:
            analysis = RegimeAnalysis(
                regime=MarketRegime.TRENDING_UP if trend.direction is Side.LONG else MarketRegime.TRENDING_DOWN,
                confidence=trend.confidence,
                strength=trend.strength,
                trend_direction=trend.direction,
                support_level=trend.support,
                resistance_level=trend.resistance,
            )
        else:
            analysis = RegimeAnalysis(
                regime=MarketRegime.RANGING,
                confidence=50.0,
                strength=0.5,
                range_top=rng.resistance,
                range_bottom=rng.support,
            )

        logger.debug(
            f"{instrument} regime: {analysis.regime.value} "
            f"(confidence={analysis.confidence:.1f}, strength={analysis.strength:.2f})"
        )
        return analysis

    def _analyze_trend(self, prices: List[float]) -> _TrendAnalysis:
        calc = self.calculator
        current = prices[-1]
        sma20 = calc.sma(prices, 20)
        sma50 = calc.sma(prices, 50) if len(prices) >= 50 else sma20
        sma100 = calc.sma(prices, 100) if len(prices) >= 100 else sma50

        direction = None
        if current > sma20 > sma50 > sma100:
            direction = Side.LONG
        elif current < sma20 < sma50 < sma100:
            direction = Side.SHORT

        total_change = (current - prices[0]) / prices[0] * 100
        strength = min(1.0, abs(total_change) / 10)

        if direction is Side.LONG:
            alignment = (current - sma20) / sma20
        else:
            alignment = (sma20 - current) / current
        confidence = clamp(50 + alignment * 1000, 0, 95)

        recent = prices[-20:]
        return _TrendAnalysis(
            direction=direction,
            strength=strength,
            confidence=confidence,
            support=min(recent),
            resistance=max(recent),
        )

    def _analyze_range(self, prices: List[float]) -> _RangeAnalysis:
        recent = prices[-self.RANGE_WINDOW:]
        high = max(recent)
        low = min(recent)
        avg_price = sum(recent) / len(recent)
        range_pct = (high - low) / avg_price * 100
        volatility = self.calculator.mean_abs_return(recent)

        is_ranging = range_pct < self.MAX_RANGE_PCT and volatility < self.MAX_RANGE_VOLATILITY

        tolerance = avg_price * self.TOUCH_TOLERANCE
        touches = sum(1 for p in recent if abs(p - high) < tolerance or abs(p - low) < tolerance)
        strength = min(1.0, touches / 10)

        return _RangeAnalysis(
            is_ranging=is_ranging,
            confidence=60 + strength * 30 if is_ranging else 30.0,
            strength=strength,
            support=low,
            resistance=high,
        )

    def _analyze_breakout(self, prices: List[float]) -> _BreakoutAnalysis:
        """Compare the current price with the range of the points before it."""
        current = prices[-1]
        previous = prices[-2]
        prior = prices[-self.BREAKOUT_WINDOW - 1:-1]
        resistance = max(prior)
        support = min(prior)

        breakout_up = current > resistance and previous <= resistance
        breakout_down = current < support and previous >= support
        if not breakout_up and not breakout_down:
            return _BreakoutAnalysis(is_breakout=False)

        if breakout_up:
            distance = (current - resistance) / resistance * 100
        else:
            distance = (support - current) / support * 100

        return _BreakoutAnalysis(
            is_breakout=True,
            confidence=min(95.0, 70 + distance * 10),
            strength=min(1.0, distance / 2),
            direction=Side.LONG if breakout_up else Side.SHORT,
        )

    def _analyze_impulse(self, prices: List[float]) -> _ImpulseAnalysis:
        if len(prices) < 10:
            return _ImpulseAnalysis()

        momentum3 = self.calculator.pct_change_from(prices, 3)
        momentum5 = self.calculator.pct_change_from(prices, 5)
        acceleration = momentum3 - momentum5

        is_up = momentum3 > 1 and momentum5 > 0.8 and acceleration > 0
        is_down = momentum3 < -1 and momentum5 < -0.8 and acceleration < 0
        if not is_up and not is_down:
            return _ImpulseAnalysis()

        avg_momentum = (abs(momentum3) + abs(momentum5)) / 2
        return _ImpulseAnalysis(
            strength=min(1.0, avg_momentum / 3),
            direction=Side.LONG if is_up else Side.SHORT,
        )

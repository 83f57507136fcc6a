"""Regime-adaptive signal generation.

Detects the market regime and runs the matching playbook:
- ranging: grid entries plus reversion from the range extremes
- trending: pullback-to-SMA20 entries, or direct entry on very strong trends
- breakout: immediate entry in the breakout direction
- strong impulse: maximum leverage and size in the impulse direction

Every smart signal carries its regime, leverage and size alongside the
fee-aware profit estimate.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from regime_pilot.exceptions import ConfigValidationError
from regime_pilot.indicators import IndicatorCalculator
from regime_pilot.market.regime import RegimeDetector
from regime_pilot.models import (
    MarketRegime,
    PricePoint,
    ProfitEstimate,
    RegimeAnalysis,
    Side,
    Signal,
    SignalTier,
    SmartSizing,
    StrategyType,
    clamp,
    new_id,
)
from regime_pilot.risk.fees import FeeModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmartConfig:
    """Probe sizes and playbook parameters for the smart tier."""
    min_history: int = 20
    range_grid_levels: int = 7
    range_grid_tolerance_pct: float = 0.15
    range_leverage: int = 3
    range_quantity: float = 0.001
    extreme_distance_pct: float = 1.0
    extreme_leverage: int = 4
    extreme_quantity: float = 0.0015
    trend_quantity: float = 0.001
    strong_trend_quantity: float = 0.0015
    breakout_quantity: float = 0.002
    impulse_quantity: float = 0.0025
    min_risk_reward: float = 1.5

    def validate(self) -> None:
        errors: List[str] = []
        if self.range_grid_levels < 1:
            errors.append("range_grid_levels must be >= 1")
        for name in ("range_quantity", "extreme_quantity", "trend_quantity",
                     "strong_trend_quantity", "breakout_quantity", "impulse_quantity"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be > 0")
        if self.range_leverage < 1 or self.extreme_leverage < 1:
            errors.append("leverage must be >= 1")
        if errors:
            raise ConfigValidationError("\n".join(errors))


class SmartSignalGenerator:
    """Dispatches on the detected regime to a regime-specific playbook."""

    def __init__(
        self,
        fee_model: Optional[FeeModel] = None,
        detector: Optional[RegimeDetector] = None,
        config: Optional[SmartConfig] = None,
        calculator: Optional[IndicatorCalculator] = None,
    ):
        self.fee_model = fee_model or FeeModel()
        self.calculator = calculator or IndicatorCalculator()
        self.detector = detector or RegimeDetector(self.calculator)
        self.config = config or SmartConfig()
        self.config.validate()

    def generate_signals(self, instrument: str, history: Sequence[PricePoint]) -> List[Signal]:
        """Generate signals for the current regime.

        Args:
            instrument: Instrument symbol
            history: Price history, oldest first

        Returns:
            Profitable signals with enough risk/reward, most urgent first
        """
        if len(history) < self.config.min_history:
            return []

        regime = self.detector.detect_regime(instrument, history)
        if regime.regime is MarketRegime.RANGING:
            candidates = self.trade_range(instrument, history, regime)
        elif regime.regime in (MarketRegime.TRENDING_UP, MarketRegime.TRENDING_DOWN):
            candidates = self.trade_trend(instrument, history, regime)
        elif regime.regime is MarketRegime.BREAKOUT:
            candidates = self.trade_breakout(instrument, history, regime)
        else:
            candidates = self.trade_impulse(instrument, history, regime)

        kept = [
            s for s in candidates
            if s.expected_profit > 0 and s.risk_reward_ratio >= self.config.min_risk_reward
        ]
        kept.sort(key=lambda s: s.urgency, reverse=True)
        if kept:
            logger.debug(f"{instrument} [{regime.regime.value}]: {len(kept)} smart signals")
        return kept

    def _signal(
        self,
        prefix: str,
        instrument: str,
        history: Sequence[PricePoint],
        side: Side,
        strategy: StrategyType,
        regime: MarketRegime,
        confidence: float,
        reason: str,
        leverage: int,
        quantity: float,
        expected_profit: float,
        risk_reward: float,
        urgency: float,
        target_price: float,
    ) -> Signal:
        last = history[-1]
        return Signal(
            id=new_id(f"{prefix}-{side.value}"),
            instrument=instrument,
            side=side,
            price=last.price,
            timestamp=last.timestamp,
            strategy=strategy,
            confidence=clamp(confidence, 0, 100),
            reason=reason,
            tier=SignalTier.SMART,
            estimate=ProfitEstimate(
                expected_profit=expected_profit,
                risk_reward_ratio=max(0.0, risk_reward),
                urgency=urgency,
                target_price=target_price,
            ),
            sizing=SmartSizing(regime=regime, optimal_leverage=leverage, optimal_size=quantity),
        )

    def trade_range(
        self,
        instrument: str,
        history: Sequence[PricePoint],
        regime: RegimeAnalysis,
    ) -> List[Signal]:
        """Grid entries inside the range plus reversion from its edges."""
        if regime.range_top is None or regime.range_bottom is None:
            return []
        range_size = regime.range_top - regime.range_bottom
        if range_size <= 0:
            return []

        cfg = self.config
        current = history[-1].price
        top, bottom = regime.range_top, regime.range_bottom
        mid = (top + bottom) / 2
        position_in_range = (current - bottom) / range_size
        step = range_size / cfg.range_grid_levels
        signals = []

        for level in range(cfg.range_grid_levels + 1):
            grid_price = bottom + level * step
            distance = abs((current - grid_price) / current) * 100
            if distance >= cfg.range_grid_tolerance_pct:
                continue

            side = Side.LONG if position_in_range < 0.5 else Side.SHORT
            target = grid_price + step * 1.5 if side is Side.LONG else grid_price - step * 1.5
            expected_move = abs((target - current) / current) * 100
            fees = self.fee_model.calculate_fees(
                current, target, cfg.range_quantity, cfg.range_leverage, side
            )
            if fees.net_pnl <= 0 or expected_move <= 0.2:
                continue

            signals.append(self._signal(
                "range-grid", instrument, history, side, StrategyType.MEAN_REVERSION,
                MarketRegime.RANGING,
                confidence=70 + regime.confidence * 0.3,
                reason=f"Range grid {side.value} at level {level}/{cfg.range_grid_levels}",
                leverage=cfg.range_leverage,
                quantity=cfg.range_quantity,
                expected_profit=fees.net_pnl,
                risk_reward=expected_move / 0.3,
                urgency=60,
                target_price=target,
            ))

        distance_to_top = (top - current) / top * 100
        distance_to_bottom = (current - bottom) / bottom * 100
        edges = []
        if distance_to_top < cfg.extreme_distance_pct:
            edges.append((Side.SHORT, "resistance"))
        if distance_to_bottom < cfg.extreme_distance_pct:
            edges.append((Side.LONG, "support"))

        for side, edge in edges:
            expected_move = abs(mid - current) / current * 100
            fees = self.fee_model.calculate_fees(
                current, mid, cfg.extreme_quantity, cfg.extreme_leverage, side
            )
            if fees.net_pnl <= 0:
                continue
            signals.append(self._signal(
                "range-reversion", instrument, history, side, StrategyType.MEAN_REVERSION,
                MarketRegime.RANGING,
                confidence=80,
                reason=f"Reversion from range {edge}",
                leverage=cfg.extreme_leverage,
                quantity=cfg.extreme_quantity,
                expected_profit=fees.net_pnl,
                risk_reward=expected_move / 0.5,
                urgency=75,
                target_price=mid,
            ))
        return signals

    def trade_trend(
        self,
        instrument: str,
        history: Sequence[PricePoint],
        regime: RegimeAnalysis,
    ) -> List[Signal]:
        """Pullback entries toward SMA20 and direct entries on very strong trends."""
        if regime.trend_direction is None:
            return []

        cfg = self.config
        side = regime.trend_direction
        prices = [p.price for p in history]
        current = prices[-1]
        sma20 = self.calculator.sma(prices, 20)
        distance_to_sma = (current - sma20) / sma20 * 100
        signals = []

        if side is Side.LONG:
            is_pullback = -1 < distance_to_sma < 0.5
        else:
            is_pullback = -0.5 < distance_to_sma < 1

        if is_pullback:
            move = regime.strength * 0.02
            target = current * (1 + move) if side is Side.LONG else current * (1 - move)
            expected_move = abs((target - current) / current) * 100
            leverage = round(5 + regime.strength * 5)
            fees = self.fee_model.calculate_fees(current, target, cfg.trend_quantity, leverage, side)
            if fees.net_pnl > 0:
                signals.append(self._signal(
                    "trend", instrument, history, side, StrategyType.MOMENTUM, regime.regime,
                    confidence=75 + regime.confidence * 0.2,
                    reason=f"Pullback in {regime.regime.value}, target {expected_move:.2f}%",
                    leverage=leverage,
                    quantity=cfg.trend_quantity,
                    expected_profit=fees.net_pnl,
                    risk_reward=expected_move / 0.8,
                    urgency=70,
                    target_price=target,
                ))

        if regime.strength > 0.8 and regime.confidence > 80:
            target = current * 1.015 if side is Side.LONG else current * 0.985
            leverage = round(8 + regime.strength * 4)
            fees = self.fee_model.calculate_fees(
                current, target, cfg.strong_trend_quantity, leverage, side
            )
            if fees.net_pnl > 0:
                signals.append(self._signal(
                    "trend-strong", instrument, history, side, StrategyType.MOMENTUM, regime.regime,
                    confidence=85,
                    reason=f"Strong {regime.regime.value}, direct entry",
                    leverage=leverage,
                    quantity=cfg.strong_trend_quantity,
                    expected_profit=fees.net_pnl,
                    risk_reward=1.5 / 0.5,
                    urgency=85,
                    target_price=target,
                ))
        return signals

    def trade_breakout(
        self,
        instrument: str,
        history: Sequence[PricePoint],
        regime: RegimeAnalysis,
    ) -> List[Signal]:
        """Immediate high-leverage entry in the breakout direction."""
        if regime.trend_direction is None:
            return []

        cfg = self.config
        side = regime.trend_direction
        current = history[-1].price
        move = regime.strength * 0.03
        target = current * (1 + move) if side is Side.LONG else current * (1 - move)
        expected_move = abs((target - current) / current) * 100
        leverage = round(10 + regime.strength * 5)

        fees = self.fee_model.calculate_fees(current, target, cfg.breakout_quantity, leverage, side)
        if fees.net_pnl <= 0 or expected_move <= 1:
            return []

        return [self._signal(
            "breakout", instrument, history, side, StrategyType.BREAKOUT, MarketRegime.BREAKOUT,
            confidence=80 + regime.confidence * 0.15,
            reason=f"Breakout {side.value}, strength {regime.strength * 100:.0f}%",
            leverage=leverage,
            quantity=cfg.breakout_quantity,
            expected_profit=fees.net_pnl,
            risk_reward=expected_move / 0.8,
            urgency=90,
            target_price=target,
        )]

    def trade_impulse(
        self,
        instrument: str,
        history: Sequence[PricePoint],
        regime: RegimeAnalysis,
    ) -> List[Signal]:
        """Maximum leverage and size to ride a strong impulse."""
        if regime.trend_direction is None or not regime.impulse_strength:
            return []

        cfg = self.config
        side = regime.trend_direction
        strength = regime.impulse_strength
        current = history[-1].price
        move = strength * 0.04
        target = current * (1 + move) if side is Side.LONG else current * (1 - move)
        expected_move = abs((target - current) / current) * 100
        leverage = round(15 + strength * 5)

        fees = self.fee_model.calculate_fees(current, target, cfg.impulse_quantity, leverage, side)
        if fees.net_pnl <= 0 or expected_move <= 2:
            return []

        return [self._signal(
            "impulse", instrument, history, side, StrategyType.MOMENTUM, MarketRegime.STRONG_IMPULSE,
            confidence=90 + strength * 10,
            reason=f"Strong {side.value} impulse, strength {strength * 100:.0f}%",
            leverage=leverage,
            quantity=cfg.impulse_quantity,
            expected_profit=fees.net_pnl,
            risk_reward=expected_move / 1.0,
            urgency=95,
            target_price=target,
        )]

"""Aggressive signal generators tuned for many small fee-aware trades.

Strategies: scalping, grid trading, enhanced momentum and early mean
reversion. Every candidate is priced through the FeeModel at a probe
quantity and leverage and discarded unless it nets a profit.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from regime_pilot.exceptions import ConfigValidationError
from regime_pilot.indicators import IndicatorCalculator
from regime_pilot.models import (
    PricePoint,
    ProfitEstimate,
    Side,
    Signal,
    SignalTier,
    StrategyType,
    clamp,
    new_id,
)
from regime_pilot.risk.fees import FeeModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggressiveConfig:
    """Aggressive tier parameters.

    Attributes:
        probe_quantity: Quantity used to price candidates through the fee model
        scalping_leverage: Leverage assumed for scalps
        scalping_target_pct: Scalp exit distance (percent)
        scalping_risk_pct: Scalp stop distance (percent)
        grid_leverage: Leverage assumed for grid entries
        grid_levels: Grid levels on each side of the midpoint
        grid_stop_pct: Assumed grid stop distance (percent)
        momentum_leverage: Leverage assumed for momentum entries
        reversion_leverage: Leverage assumed for mean-reversion entries
        min_risk_reward: Minimum risk/reward kept by generate_signals
        max_signals: Maximum signals returned per call
    """
    probe_quantity: float = 0.001
    scalping_leverage: int = 5
    scalping_target_pct: float = 0.3
    scalping_risk_pct: float = 0.1
    grid_leverage: int = 3
    grid_levels: int = 5
    grid_stop_pct: float = 0.3
    momentum_leverage: int = 8
    reversion_leverage: int = 5
    min_risk_reward: float = 1.5
    max_signals: int = 10

    def validate(self) -> None:
        errors: List[str] = []
        if self.probe_quantity <= 0:
            errors.append("probe_quantity must be > 0")
        for name in ("scalping_leverage", "grid_leverage", "momentum_leverage", "reversion_leverage"):
            if getattr(self, name) < 1:
                errors.append(f"{name} must be >= 1")
        if self.scalping_risk_pct <= 0 or self.grid_stop_pct <= 0:
            errors.append("stop distances must be > 0")
        if self.grid_levels < 1:
            errors.append("grid_levels must be >= 1")
        if self.max_signals < 1:
            errors.append("max_signals must be >= 1")
        if errors:
            raise ConfigValidationError("\n".join(errors))


class AggressiveSignalGenerator:
    """Generates fee-checked aggressive signals."""

    def __init__(
        self,
        fee_model: Optional[FeeModel] = None,
        config: Optional[AggressiveConfig] = None,
        calculator: Optional[IndicatorCalculator] = None,
    ):
        self.fee_model = fee_model or FeeModel()
        self.config = config or AggressiveConfig()
        self.config.validate()
        self.calculator = calculator or IndicatorCalculator()

    def _signal(
        self,
        prefix: str,
        instrument: str,
        history: Sequence[PricePoint],
        side: Side,
        strategy: StrategyType,
        confidence: float,
        reason: str,
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
            tier=SignalTier.AGGRESSIVE,
            estimate=ProfitEstimate(
                expected_profit=expected_profit,
                risk_reward_ratio=max(0.0, risk_reward),
                urgency=urgency,
                target_price=target_price,
            ),
        )

    def scalping(self, instrument: str, history: Sequence[PricePoint]) -> List[Signal]:
        """Small consistent moves over the last 2-5 points."""
        if len(history) < 10:
            return []

        cfg = self.config
        prices = [p.price for p in history]
        current = prices[-1]
        risk_reward = cfg.scalping_target_pct / cfg.scalping_risk_pct
        signals = []

        for lookback in range(2, 6):
            change = self.calculator.pct_change_from(prices, lookback)
            if 0.1 < change < 0.8:
                side = Side.LONG
                target = current * (1 + cfg.scalping_target_pct / 100)
            elif -0.8 < change < -0.1:
                side = Side.SHORT
                target = current * (1 - cfg.scalping_target_pct / 100)
            else:
                continue

            fees = self.fee_model.calculate_fees(
                current, target, cfg.probe_quantity, cfg.scalping_leverage, side
            )
            if fees.net_pnl <= 0:
                continue

            signals.append(self._signal(
                "scalping", instrument, history, side, StrategyType.MOMENTUM,
                confidence=60 + abs(change) * 10,
                reason=f"Scalping {side.value}: {change:+.3f}% over {lookback} points",
                expected_profit=fees.net_pnl,
                risk_reward=risk_reward,
                urgency=85,
                target_price=target,
            ))
        return signals

    def grid(self, instrument: str, history: Sequence[PricePoint]) -> List[Signal]:
        """Entries at evenly spaced levels across the 20-point range."""
        if len(history) < 20:
            return []

        cfg = self.config
        prices = [p.price for p in history]
        current = prices[-1]
        recent = prices[-20:]
        high, low = max(recent), min(recent)
        mid = (high + low) / 2
        step = (high - low) / (cfg.grid_levels * 2)
        signals = []

        for level in range(-cfg.grid_levels, cfg.grid_levels + 1):
            grid_price = mid + level * step
            distance = abs((current - grid_price) / current) * 100
            if distance >= 0.2:
                continue

            side = Side.LONG if level < 0 else Side.SHORT
            target = grid_price + step * 2 if side is Side.LONG else grid_price - step * 2
            expected_move = abs((target - current) / current) * 100

            fees = self.fee_model.calculate_fees(
                current, target, cfg.probe_quantity, cfg.grid_leverage, side
            )
            if fees.net_pnl <= 0 or expected_move <= 0.2:
                continue

            signals.append(self._signal(
                "grid", instrument, history, side, StrategyType.MEAN_REVERSION,
                confidence=65,
                reason=f"Grid {side.value} at level {level}, target {expected_move:.2f}%",
                expected_profit=fees.net_pnl,
                risk_reward=expected_move / cfg.grid_stop_pct,
                urgency=70,
                target_price=target,
            ))
        return signals

    def enhanced_momentum(self, instrument: str, history: Sequence[PricePoint]) -> List[Signal]:
        """Early momentum: positive 3/5-point momentum that is accelerating."""
        if len(history) < 15:
            return []

        cfg = self.config
        prices = [p.price for p in history]
        current = prices[-1]
        momentum3 = self.calculator.pct_change_from(prices, 3)
        momentum5 = self.calculator.pct_change_from(prices, 5)
        acceleration = momentum3 - (momentum5 - momentum3)

        if momentum3 > 0.3 and momentum5 > 0.2 and acceleration > 0:
            side = Side.LONG
        elif momentum3 < -0.3 and momentum5 < -0.2 and acceleration < 0:
            side = Side.SHORT
        else:
            return []

        expected_move = min(2.0, abs(momentum3) * 2)
        if side is Side.LONG:
            target = current * (1 + expected_move / 100)
        else:
            target = current * (1 - expected_move / 100)

        fees = self.fee_model.calculate_fees(
            current, target, cfg.probe_quantity, cfg.momentum_leverage, side
        )
        if fees.net_pnl <= 0:
            return []

        return [self._signal(
            "momentum", instrument, history, side, StrategyType.MOMENTUM,
            confidence=70 + min(20.0, abs(momentum3) * 5),
            reason=f"Accelerating {side.value} momentum: {momentum3:+.2f}%",
            expected_profit=fees.net_pnl,
            risk_reward=expected_move / 0.5,
            urgency=80,
            target_price=target,
        )]

    def aggressive_mean_reversion(self, instrument: str, history: Sequence[PricePoint]) -> List[Signal]:
        """Early reversion entries when price is stretched below/above SMA10 and SMA20."""
        if len(history) < 20:
            return []

        cfg = self.config
        prices = [p.price for p in history]
        current = prices[-1]
        sma10 = self.calculator.sma(prices, 10)
        sma20 = self.calculator.sma(prices, 20)
        dev10 = (current - sma10) / sma10 * 100
        dev20 = (current - sma20) / sma20 * 100

        if dev10 < -1 and dev20 < -1.5 and current < sma10 < sma20:
            side = Side.LONG
            expected_move = (sma20 - current) / current * 100
        elif dev10 > 1 and dev20 > 1.5 and current > sma10 > sma20:
            side = Side.SHORT
            expected_move = (current - sma20) / current * 100
        else:
            return []

        fees = self.fee_model.calculate_fees(
            current, sma20, cfg.probe_quantity, cfg.reversion_leverage, side
        )
        if fees.net_pnl <= 0 or expected_move <= 0.5:
            return []

        return [self._signal(
            "reversion", instrument, history, side, StrategyType.MEAN_REVERSION,
            confidence=75 + min(15.0, abs(dev20) * 2),
            reason=f"{side.value.capitalize()} reversion: price {dev20:+.2f}% from SMA20",
            expected_profit=fees.net_pnl,
            risk_reward=expected_move / 1.0,
            urgency=75,
            target_price=sma20,
        )]

    def generate_signals(self, instrument: str, history: Sequence[PricePoint]) -> List[Signal]:
        """Run every aggressive strategy, keep the best by urgency.

        Returns:
            Signals with positive expected profit and enough risk/reward,
            most urgent first, at most ``max_signals``
        """
        candidates = (
            self.scalping(instrument, history)
            + self.grid(instrument, history)
            + self.enhanced_momentum(instrument, history)
            + self.aggressive_mean_reversion(instrument, history)
        )
        kept = [
            s for s in candidates
            if s.expected_profit > 0 and s.risk_reward_ratio >= self.config.min_risk_reward
        ]
        kept.sort(key=lambda s: s.urgency, reverse=True)
        if kept:
            logger.debug(f"{instrument}: {len(kept)}/{len(candidates)} aggressive signals kept")
        return kept[: self.config.max_signals]

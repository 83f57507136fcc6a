"""Dynamic stop-loss, take-profit and trailing stop levels.

Levels widen with volatility, tighten the stop and stretch the target with
trend strength and confidence, snap the stop to a nearby support/resistance
level, and trail half of the best open profit.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from regime_pilot.exceptions import ConfigValidationError
from regime_pilot.models import CloseReason, MarketAnalysis, Position, PricePoint
from regime_pilot.risk.support_resistance import SupportResistance, SupportResistanceFinder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProtectionConfig:
    """Protective level parameters. Percentages are of entry price."""
    base_stop_pct: float = 0.5
    volatility_stop_factor: float = 2.0
    reward_ratio: float = 3.0
    trend_stop_tightening: float = 0.3
    trend_target_widening: float = 0.5
    confidence_stop_tightening: float = 0.2
    confidence_target_widening: float = 0.3
    level_snap_range: float = 1.5
    level_snap_fraction: float = 0.9
    trailing_retracement: float = 0.5

    def validate(self) -> None:
        errors: List[str] = []
        if self.base_stop_pct <= 0:
            errors.append("base_stop_pct must be > 0")
        if self.reward_ratio <= 0:
            errors.append("reward_ratio must be > 0")
        for name in ("trend_stop_tightening", "confidence_stop_tightening",
                     "level_snap_fraction", "trailing_retracement"):
            value = getattr(self, name)
            if not 0 <= value < 1:
                errors.append(f"{name} must be in [0, 1)")
        if self.volatility_stop_factor < 0:
            errors.append("volatility_stop_factor must be >= 0")
        if self.level_snap_range < 0:
            errors.append("level_snap_range must be >= 0")
        if errors:
            raise ConfigValidationError("\n".join(errors))


@dataclass(frozen=True)
class DynamicLevels:
    """Absolute protective prices plus their percentage distances."""
    stop_loss: float
    take_profit: float
    stop_loss_pct: float
    take_profit_pct: float
    trailing_stop: Optional[float] = None


@dataclass(frozen=True)
class CloseDecision:
    should_close: bool
    reason: Optional[CloseReason] = None


class DynamicProtectionEngine:
    """Computes protective levels and close decisions for positions."""

    def __init__(
        self,
        config: Optional[ProtectionConfig] = None,
        finder: Optional[SupportResistanceFinder] = None,
    ):
        self.config = config or ProtectionConfig()
        self.config.validate()
        self.finder = finder or SupportResistanceFinder()

    def calculate_dynamic_levels(
        self,
        position: Position,
        current_price: float,
        analysis: MarketAnalysis,
        history: Sequence[PricePoint],
    ) -> DynamicLevels:
        """Calculate stop-loss, take-profit and trailing stop.

        Args:
            position: Position (or prospective position) to protect
            current_price: Current market price
            analysis: Market analysis; its confidence should be the signal's
            history: Price history used for support/resistance

        Returns:
            DynamicLevels for the position
        """
        cfg = self.config
        is_long = position.is_long
        entry = position.entry_price

        stop_pct = cfg.base_stop_pct + analysis.volatility * cfg.volatility_stop_factor
        target_pct = stop_pct * cfg.reward_ratio

        stop_pct *= 1 - analysis.trend_strength * cfg.trend_stop_tightening
        target_pct *= 1 + analysis.trend_strength * cfg.trend_target_widening

        stop_pct *= 1 - (100 - analysis.confidence) / 100 * cfg.confidence_stop_tightening
        target_pct *= 1 + analysis.confidence / 100 * cfg.confidence_target_widening

        sr = self.find_support_resistance(history, current_price, is_long)
        if sr.nearest_level is not None:
            level = sr.nearest_level
            on_loss_side = level < entry if is_long else level > entry
            level_distance = abs(level - entry) / entry * 100
            if on_loss_side and level_distance < stop_pct * cfg.level_snap_range:
                logger.debug(
                    f"{position.instrument} stop snapped to level {level:.4f} "
                    f"({level_distance:.3f}% from entry)"
                )
                stop_pct = level_distance * cfg.level_snap_fraction

        if is_long:
            stop_loss = entry * (1 - stop_pct / 100)
            take_profit = entry * (1 + target_pct / 100)
        else:
            stop_loss = entry * (1 + stop_pct / 100)
            take_profit = entry * (1 - target_pct / 100)

        return DynamicLevels(
            stop_loss=stop_loss,
            take_profit=take_profit,
            stop_loss_pct=stop_pct,
            take_profit_pct=target_pct,
            trailing_stop=self._trailing_stop(position, current_price),
        )

    def update_order_levels(
        self,
        position: Position,
        current_price: float,
        analysis: MarketAnalysis,
        history: Sequence[PricePoint],
    ) -> DynamicLevels:
        """Recompute levels for an open position on a new price."""
        return self.calculate_dynamic_levels(position, current_price, analysis, history)

    def _trailing_stop(self, position: Position, current_price: float) -> Optional[float]:
        """Trail a share of the best profit seen while the position is in profit."""
        entry = position.entry_price
        retrace = self.config.trailing_retracement
        peak = position.peak_price

        if position.is_long:
            if current_price <= entry:
                return None
            best = current_price if peak is None else max(peak, current_price)
            return best - (best - entry) * retrace

        if current_price >= entry:
            return None
        best = current_price if peak is None else min(peak, current_price)
        return best + (entry - best) * retrace

    def find_support_resistance(
        self,
        history: Sequence[PricePoint],
        current_price: float,
        is_long: bool,
    ) -> SupportResistance:
        return self.finder.find(history, current_price, is_long)

    def should_close_order(
        self,
        position: Position,
        current_price: float,
        levels: DynamicLevels,
    ) -> CloseDecision:
        """Decide whether a position should close at current_price.

        Checked in order: stop-loss, take-profit, trailing stop.
        """
        if position.is_long:
            if current_price <= levels.stop_loss:
                return CloseDecision(True, CloseReason.STOP_LOSS)
            if current_price >= levels.take_profit:
                return CloseDecision(True, CloseReason.TAKE_PROFIT)
            if levels.trailing_stop is not None and current_price <= levels.trailing_stop:
                return CloseDecision(True, CloseReason.TRAILING_STOP)
        else:
            if current_price >= levels.stop_loss:
                return CloseDecision(True, CloseReason.STOP_LOSS)
            if current_price <= levels.take_profit:
                return CloseDecision(True, CloseReason.TAKE_PROFIT)
            if levels.trailing_stop is not None and current_price >= levels.trailing_stop:
                return CloseDecision(True, CloseReason.TRAILING_STOP)
        return CloseDecision(False)

    @staticmethod
    def levels_from_position(position: Position) -> Optional[DynamicLevels]:
        """Rebuild price levels from the percentages stored on a position."""
        if position.stop_loss_pct is None or position.take_profit_pct is None:
            return None
        entry = position.entry_price
        if position.is_long:
            stop_loss = entry * (1 - position.stop_loss_pct / 100)
            take_profit = entry * (1 + position.take_profit_pct / 100)
        else:
            stop_loss = entry * (1 + position.stop_loss_pct / 100)
            take_profit = entry * (1 - position.take_profit_pct / 100)
        return DynamicLevels(
            stop_loss=stop_loss,
            take_profit=take_profit,
            stop_loss_pct=position.stop_loss_pct,
            take_profit_pct=position.take_profit_pct,
        )

"""Adaptive leverage and position sizing.

Leverage scales between a floor and a cap with a weighted score built from
signal confidence, calm markets, trend strength and recent performance.
Trade size is a share of available capital, shrunk for low confidence,
high volatility and poor recent performance.
"""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence

from regime_pilot.exceptions import ConfigValidationError
from regime_pilot.indicators import IndicatorCalculator
from regime_pilot.models import MarketAnalysis, PricePoint, Signal, clamp
from regime_pilot.risk.capital import CapitalLedger

logger = logging.getLogger(__name__)

MIN_ANALYSIS_POINTS = 20


@dataclass(frozen=True)
class LeverageConfig:
    """Leverage bounds and score weights."""
    min_leverage: int = 3
    max_leverage: int = 20
    confidence_weight: float = 0.5
    volatility_weight: float = 0.25
    trend_weight: float = 0.2
    performance_weight: float = 0.25

    def validate(self) -> None:
        errors: List[str] = []
        if self.min_leverage < 1:
            errors.append("min_leverage must be >= 1")
        if self.max_leverage < self.min_leverage:
            errors.append("max_leverage must be >= min_leverage")
        for name in ("confidence_weight", "volatility_weight", "trend_weight", "performance_weight"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must be >= 0")
        if errors:
            raise ConfigValidationError("\n".join(errors))


@dataclass(frozen=True)
class TradeSize:
    """Sized trade.

    Attributes:
        quantity: Instrument quantity, within the configured bounds
        capital_allocated: Margin required (quantity * price / leverage)
        risk_amount: Capital put at risk after all adjustments
    """
    quantity: float
    capital_allocated: float
    risk_amount: float


class AdaptiveLeverageSizer:
    """Derives market metrics, leverage and trade size for a signal."""

    def __init__(
        self,
        ledger: CapitalLedger,
        config: Optional[LeverageConfig] = None,
        calculator: Optional[IndicatorCalculator] = None,
    ):
        self.ledger = ledger
        self.config = config or LeverageConfig()
        self.config.validate()
        self.calculator = calculator or IndicatorCalculator()

    def analyze_market(self, instrument: str, history: Sequence[PricePoint]) -> MarketAnalysis:
        """Compute volatility, trend strength and recent performance.

        Args:
            instrument: Instrument symbol
            history: Price history, oldest first

        Returns:
            MarketAnalysis; neutral defaults flagged ``is_default`` when fewer
            than 20 points are available
        """
        if len(history) < MIN_ANALYSIS_POINTS:
            return MarketAnalysis(is_default=True)

        prices = [p.price for p in history]
        volatility = min(1.0, self.calculator.volatility(prices) * 100)

        recent = prices[-20:]
        trend = (recent[-1] - recent[0]) / recent[0]
        trend_strength = min(1.0, abs(trend) * 10)

        recent_avg = self.calculator.sma(prices[-10:], 10)
        previous_avg = self.calculator.sma(prices[-20:-10], 10)
        recent_performance = (recent_avg - previous_avg) / previous_avg

        analysis = MarketAnalysis(
            volatility=volatility,
            trend_strength=trend_strength,
            confidence=70.0,
            recent_performance=recent_performance,
            volume=0.5 + volatility * 0.5,
        )
        logger.debug(
            f"{instrument} market: vol={volatility:.3f} trend={trend_strength:.3f} "
            f"perf={recent_performance:+.4f}"
        )
        return analysis

    def calculate_optimal_leverage(self, signal: Signal, analysis: MarketAnalysis) -> int:
        """Leverage for a signal given market conditions.

        The signal's confidence replaces the analysis placeholder; the
        analysis itself is left untouched.

        Args:
            signal: Signal being sized
            analysis: Market analysis for the instrument

        Returns:
            Integer leverage within [min_leverage, max_leverage]
        """
        cfg = self.config
        confidence_score = signal.confidence / 100
        volatility_score = 1 - analysis.volatility
        trend_score = analysis.trend_strength
        performance_score = (analysis.recent_performance + 1) / 2

        score = (
            confidence_score * cfg.confidence_weight
            + volatility_score * cfg.volatility_weight
            + trend_score * cfg.trend_weight
            + performance_score * cfg.performance_weight
        )
        raw = cfg.min_leverage + score * (cfg.max_leverage - cfg.min_leverage)
        return int(clamp(round(raw), cfg.min_leverage, cfg.max_leverage))

    def calculate_trade_size(
        self,
        signal: Signal,
        analysis: MarketAnalysis,
        current_price: float,
        leverage: int,
    ) -> TradeSize:
        """Size a trade from available capital.

        Args:
            signal: Signal being sized (its confidence scales risk)
            analysis: Market analysis (volatility and performance scale risk)
            current_price: Expected entry price
            leverage: Leverage the trade will use

        Returns:
            TradeSize with quantity clamped to the configured bounds
        """
        capital_cfg = self.ledger.config
        available = self.ledger.get_available_capital()

        base_risk = available * capital_cfg.max_risk_per_trade_pct / 100
        risk_amount = base_risk * (0.5 + signal.confidence / 100 * 0.5)
        risk_amount *= 1 - analysis.volatility * 0.3
        risk_amount *= 0.7 + (analysis.recent_performance + 1) / 2 * 0.3

        position_value = risk_amount / (capital_cfg.assumed_stop_loss_pct / 100) * leverage
        quantity = clamp(position_value / current_price,
                         capital_cfg.min_trade_size, capital_cfg.max_trade_size)

        return TradeSize(
            quantity=quantity,
            capital_allocated=quantity * current_price / leverage,
            risk_amount=risk_amount,
        )

    def update_config(self, **changes) -> LeverageConfig:
        config = replace(self.config, **changes)
        config.validate()
        self.config = config
        return config

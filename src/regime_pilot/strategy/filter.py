"""Profitability filter applied to every candidate signal.

Signals that carry a profit estimate are judged on it; baseline signals are
sized with the adaptive sizer and priced through the fee model against a
fixed exit move.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from regime_pilot.exceptions import ConfigValidationError
from regime_pilot.models import PricePoint, Side, Signal
from regime_pilot.risk.fees import FeeModel
from regime_pilot.risk.leverage import AdaptiveLeverageSizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterConfig:
    """Filter thresholds.

    Attributes:
        min_risk_reward: Minimum risk/reward for signals with an estimate
        baseline_exit_move_pct: Exit distance assumed for baseline signals
    """
    min_risk_reward: float = 1.5
    baseline_exit_move_pct: float = 1.0

    def validate(self) -> None:
        errors: List[str] = []
        if self.min_risk_reward < 0:
            errors.append("min_risk_reward must be >= 0")
        if self.baseline_exit_move_pct <= 0:
            errors.append("baseline_exit_move_pct must be > 0")
        if errors:
            raise ConfigValidationError("\n".join(errors))


class ProfitabilityFilter:
    """Rejects low-confidence or fee-negative signals."""

    def __init__(
        self,
        fee_model: FeeModel,
        sizer: AdaptiveLeverageSizer,
        config: Optional[FilterConfig] = None,
    ):
        self.fee_model = fee_model
        self.sizer = sizer
        self.config = config or FilterConfig()
        self.config.validate()

    def exit_price(self, signal: Signal) -> float:
        """Exit price used when a signal has no target of its own."""
        move = self.config.baseline_exit_move_pct / 100
        if signal.side is Side.LONG:
            return signal.price * (1 + move)
        return signal.price * (1 - move)

    def filter(
        self,
        signals: Sequence[Signal],
        min_confidence: float,
        history: Sequence[PricePoint],
    ) -> List[Signal]:
        """Keep only signals worth acting on.

        Args:
            signals: Candidate signals, in generation order
            min_confidence: Strategy confidence floor
            history: Price history of the signals' instrument

        Returns:
            Surviving signals in their original order
        """
        kept = []
        analysis = None
        for signal in signals:
            if signal.confidence < min_confidence:
                continue

            if signal.estimate is not None:
                if (signal.expected_profit > 0
                        and signal.risk_reward_ratio >= self.config.min_risk_reward):
                    kept.append(signal)
                continue

            if analysis is None:
                analysis = self.sizer.analyze_market(signal.instrument, history)
            leverage = self.sizer.calculate_optimal_leverage(signal, analysis)
            size = self.sizer.calculate_trade_size(signal, analysis, signal.price, leverage)
            if self.fee_model.is_profitable(
                signal.price, self.exit_price(signal), size.quantity, leverage, signal.side
            ):
                kept.append(signal)
            else:
                logger.debug(
                    f"{signal.instrument} {signal.strategy.value} {signal.side.value} rejected: "
                    f"unprofitable after fees at {size.quantity:.6f} x{leverage}"
                )
        return kept

    def evaluate_at_size(self, signal: Signal, quantity: float, leverage: int) -> bool:
        """Re-check a signal at the size it will actually trade.

        Uses the signal's own target when it has one, else the baseline exit.
        """
        exit_price = signal.target_price if signal.target_price is not None else self.exit_price(signal)
        return self.fee_model.is_profitable(signal.price, exit_price, quantity, leverage, signal.side)

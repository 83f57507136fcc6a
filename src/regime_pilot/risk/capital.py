"""Capital ledger tracking the trading budget across closed trades."""

import logging
from dataclasses import dataclass, replace
from typing import List, Optional

from regime_pilot.exceptions import ConfigValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapitalConfig:
    """Capital and per-trade sizing limits.

    Attributes:
        initial_capital: Starting budget in quote currency
        max_risk_per_trade_pct: Share of available capital risked per trade
        min_trade_size: Smallest quantity ever sized
        max_trade_size: Largest quantity ever sized
        compounding: Whether realized gains grow the budget
        assumed_stop_loss_pct: Stop distance used to turn risk into size
    """
    initial_capital: float = 10.0
    max_risk_per_trade_pct: float = 3.0
    min_trade_size: float = 0.0001
    max_trade_size: float = 0.02
    compounding: bool = True
    assumed_stop_loss_pct: float = 5.0

    def validate(self) -> None:
        errors: List[str] = []
        if self.initial_capital <= 0:
            errors.append("initial_capital must be > 0")
        if not 0 < self.max_risk_per_trade_pct <= 100:
            errors.append("max_risk_per_trade_pct must be in (0, 100]")
        if self.min_trade_size <= 0:
            errors.append("min_trade_size must be > 0")
        if self.max_trade_size < self.min_trade_size:
            errors.append("max_trade_size must be >= min_trade_size")
        if self.assumed_stop_loss_pct <= 0:
            errors.append("assumed_stop_loss_pct must be > 0")
        if errors:
            raise ConfigValidationError("\n".join(errors))


@dataclass(frozen=True)
class CapitalStats:
    initial_capital: float
    current_capital: float
    available_capital: float
    total_return: float
    total_return_pct: float
    banked_profit: float
    compounding: bool


class CapitalLedger:
    """Tracks current capital and applies realized P&L.

    With compounding, every closed trade's P&L is added to capital. Without
    it, losses still reduce capital while gains are set aside in
    ``banked_profit`` so the sizing budget never grows.
    """

    def __init__(self, config: Optional[CapitalConfig] = None):
        self.config = config or CapitalConfig()
        self.config.validate()
        self.current_capital = self.config.initial_capital
        self.banked_profit = 0.0

    def set_initial_capital(self, amount: float) -> None:
        """Reset the ledger to a new starting budget.

        Raises:
            ValueError: If amount is not positive
        """
        if amount <= 0:
            raise ValueError(f"initial capital must be > 0, got {amount}")
        self.config = replace(self.config, initial_capital=amount)
        self.current_capital = amount
        self.banked_profit = 0.0
        logger.info(f"Initial capital set to ${amount:.2f}")

    def update_capital(self, pnl: float) -> float:
        """Apply the net P&L of a closed trade.

        Args:
            pnl: Realized P&L after fees

        Returns:
            Current capital after the update
        """
        if self.config.compounding or pnl < 0:
            self.current_capital += pnl
        else:
            self.banked_profit += pnl

        logger.info(
            f"Capital updated: {pnl:+.4f} -> ${self.current_capital:.4f}"
            + ("" if self.config.compounding else f" (banked ${self.banked_profit:.4f})")
        )
        if self.current_capital <= 0:
            logger.warning(f"Capital exhausted: ${self.current_capital:.4f}")
        return self.current_capital

    def get_available_capital(self) -> float:
        """Capital available for sizing, never negative."""
        return max(0.0, self.current_capital)

    def get_capital_stats(self) -> CapitalStats:
        initial = self.config.initial_capital
        total_return = self.current_capital - initial
        return CapitalStats(
            initial_capital=initial,
            current_capital=self.current_capital,
            available_capital=self.get_available_capital(),
            total_return=total_return,
            total_return_pct=total_return / initial * 100,
            banked_profit=self.banked_profit,
            compounding=self.config.compounding,
        )

    def update_config(self, **changes) -> CapitalConfig:
        """Replace configuration fields.

        Changing ``initial_capital`` through here does not reset current
        capital; use ``set_initial_capital`` for that.

        Raises:
            ConfigValidationError: If the resulting config is invalid
        """
        config = replace(self.config, **changes)
        config.validate()
        self.config = config
        logger.info(f"Capital config updated: {changes}")
        return config

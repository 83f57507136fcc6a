"""Fee model for leveraged perpetual futures trades.

Computes opening/closing commissions, funding over the holding period,
and the resulting net P&L and breakeven price for a prospective trade.
"""

import logging
import math
from dataclasses import dataclass, replace
from typing import List, Optional

from regime_pilot.exceptions import ConfigValidationError
from regime_pilot.models import Side

logger = logging.getLogger(__name__)

FUNDING_INTERVAL_HOURS = 8
MIN_QUANTITY = 0.0001


@dataclass(frozen=True)
class FeeSchedule:
    """Exchange fee schedule. Rates are percentages of position value."""
    maker_fee_pct: float = 0.02
    taker_fee_pct: float = 0.04
    funding_rate_pct: float = 0.01
    min_fee: float = 0.10

    def validate(self) -> None:
        errors: List[str] = []
        if self.maker_fee_pct < 0:
            errors.append("maker_fee_pct must be >= 0")
        if self.taker_fee_pct < 0:
            errors.append("taker_fee_pct must be >= 0")
        if self.funding_rate_pct < 0:
            errors.append("funding_rate_pct must be >= 0")
        if self.min_fee < 0:
            errors.append("min_fee must be >= 0")
        if errors:
            raise ConfigValidationError("\n".join(errors))


@dataclass(frozen=True)
class FeeCalculation:
    """Fee breakdown for one round-trip trade."""
    position_value: float
    open_fee: float
    close_fee: float
    funding_fee: float
    total_fees: float
    gross_pnl: float
    net_pnl: float
    breakeven_price: float

    @property
    def is_profitable(self) -> bool:
        return self.net_pnl > 0


class FeeModel:
    """Fee-aware P&L calculator.

    The schedule is fixed per call; ``update_schedule`` swaps it atomically.
    """

    def __init__(self, schedule: Optional[FeeSchedule] = None):
        self._schedule = schedule or FeeSchedule()
        self._schedule.validate()

    @property
    def schedule(self) -> FeeSchedule:
        return self._schedule

    def update_schedule(self, **changes) -> FeeSchedule:
        """Replace fields of the schedule.

        Raises:
            ConfigValidationError: If the resulting schedule is invalid
        """
        schedule = replace(self._schedule, **changes)
        schedule.validate()
        self._schedule = schedule
        logger.info(f"Fee schedule updated: {schedule}")
        return schedule

    def calculate_fees(
        self,
        entry_price: float,
        exit_price: float,
        quantity: float,
        leverage: float,
        side: Side,
        is_maker: bool = False,
        hours_open: float = 0,
    ) -> FeeCalculation:
        """Calculate fees and net P&L for a round trip.

        Args:
            entry_price: Entry price
            exit_price: Exit price
            quantity: Position quantity
            leverage: Leverage multiplier
            side: LONG or SHORT
            is_maker: Use the maker rate instead of the taker rate
            hours_open: Holding time; funding is charged per full 8h interval

        Returns:
            FeeCalculation with the full breakdown
        """
        schedule = self._schedule
        position_value = quantity * entry_price * leverage
        rate = schedule.maker_fee_pct if is_maker else schedule.taker_fee_pct

        open_fee = max(schedule.min_fee, position_value * rate / 100)
        close_fee = max(schedule.min_fee, position_value * rate / 100)

        intervals = math.floor(max(0.0, hours_open) / FUNDING_INTERVAL_HOURS)
        funding_fee = position_value * schedule.funding_rate_pct / 100 * intervals

        total_fees = open_fee + close_fee + funding_fee

        if side is Side.LONG:
            gross_pnl = (exit_price - entry_price) * quantity * leverage
            breakeven = entry_price + total_fees / (quantity * leverage)
        else:
            gross_pnl = (entry_price - exit_price) * quantity * leverage
            breakeven = entry_price - total_fees / (quantity * leverage)

        return FeeCalculation(
            position_value=position_value,
            open_fee=open_fee,
            close_fee=close_fee,
            funding_fee=funding_fee,
            total_fees=total_fees,
            gross_pnl=gross_pnl,
            net_pnl=gross_pnl - total_fees,
            breakeven_price=breakeven,
        )

    def is_profitable(
        self,
        entry_price: float,
        exit_price: float,
        quantity: float,
        leverage: float,
        side: Side,
        hours_open: float = 0,
    ) -> bool:
        """True iff the taker round trip nets a positive P&L."""
        calc = self.calculate_fees(entry_price, exit_price, quantity, leverage, side,
                                   hours_open=hours_open)
        return calc.net_pnl > 0

    def calculate_min_profitable_size(
        self,
        entry_price: float,
        expected_move_pct: float,
        leverage: float,
        min_profit_pct: float = 0.5,
    ) -> float:
        """Minimum quantity for which an expected move clears fees.

        A price move of X% earns X% of position value at any leverage, so
        the move has to beat the round-trip taker rate plus the required
        profit. Above that, only the minimum fee floor depends on size.

        Args:
            entry_price: Entry price
            expected_move_pct: Expected favourable move in percent
            leverage: Leverage multiplier
            min_profit_pct: Required profit on top of fees, in percent of
                position value

        Returns:
            0 when the move cannot cover round-trip taker fees plus the
            minimum profit, otherwise the smallest quantity (never below
            MIN_QUANTITY) whose fees, floor included, are covered
        """
        schedule = self._schedule
        required_move_pct = schedule.taker_fee_pct * 2 + min_profit_pct
        if expected_move_pct <= required_move_pct:
            return 0.0

        # Notional at which the move pays both minimum fees plus the profit
        floor_notional = schedule.min_fee * 2 / ((expected_move_pct - min_profit_pct) / 100)
        quantity = floor_notional / (entry_price * leverage)
        return max(MIN_QUANTITY, quantity)

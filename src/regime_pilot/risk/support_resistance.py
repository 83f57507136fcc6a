"""Support/resistance finder over a plain price history.

A point is a level when it sits at (within 0.1% of) the maximum or minimum
of the 20-point window centred on it.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from regime_pilot.models import PricePoint


@dataclass(frozen=True)
class SupportResistance:
    """Nearest relevant level plus every level found, ascending."""
    nearest_level: Optional[float] = None
    levels: List[float] = field(default_factory=list)


class SupportResistanceFinder:
    """Finds local extremes acting as support or resistance.

    Thresholds:
    - Window: 10 points either side
    - Tolerance: 0.1% of the local extreme
    - Minimum history: 20 points
    """

    WINDOW = 10
    TOLERANCE = 0.001
    MIN_POINTS = 20

    def find(
        self,
        history: Sequence[PricePoint],
        current_price: float,
        is_long: bool,
    ) -> SupportResistance:
        """Find levels and the nearest one on the protective side.

        Args:
            history: Price history, oldest first
            current_price: Current price
            is_long: Longs look for support below, shorts for resistance above

        Returns:
            SupportResistance; empty when history is too short
        """
        if len(history) < self.MIN_POINTS:
            return SupportResistance()

        prices = [p.price for p in history]
        levels = self._find_levels(prices)
        nearest = self._find_nearest(levels, current_price, is_long)
        return SupportResistance(nearest_level=nearest, levels=levels)

    def _find_levels(self, prices: List[float]) -> List[float]:
        found = set()
        for i in range(self.WINDOW, len(prices) - self.WINDOW):
            window = prices[i - self.WINDOW:i + self.WINDOW]
            local_max = max(window)
            local_min = min(window)
            if abs(prices[i] - local_max) < local_max * self.TOLERANCE:
                found.add(local_max)
            if abs(prices[i] - local_min) < local_min * self.TOLERANCE:
                found.add(local_min)
        return sorted(found)

    def _find_nearest(self, levels: List[float], price: float, is_long: bool) -> Optional[float]:
        if is_long:
            candidates = [lvl for lvl in levels if lvl < price]
        else:
            candidates = [lvl for lvl in levels if lvl > price]
        if not candidates:
            return None
        return min(candidates, key=lambda lvl: abs(lvl - price))

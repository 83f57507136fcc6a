"""Rolling per-instrument price history."""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from regime_pilot.models import PricePoint

logger = logging.getLogger(__name__)


class PriceHistoryStore:
    """Keeps the most recent price observations for each instrument.

    Each instrument holds at most ``capacity`` points in insertion order;
    appending beyond capacity evicts the oldest point.
    """

    def __init__(self, capacity: int = 100):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._history: Dict[str, Deque[PricePoint]] = {}

    def add_price_data(self, instrument: str, price: float, timestamp: int) -> PricePoint:
        """Append an observation.

        Args:
            instrument: Instrument symbol (e.g. "BTC")
            price: Observed price, positive and finite
            timestamp: Epoch milliseconds, not earlier than the last point

        Returns:
            The stored PricePoint

        Raises:
            ValueError: On an invalid price or a timestamp going backwards
        """
        point = PricePoint(instrument=instrument, price=price, timestamp=int(timestamp))
        series = self._history.setdefault(instrument, deque(maxlen=self.capacity))
        if series and point.timestamp < series[-1].timestamp:
            raise ValueError(
                f"{instrument}: timestamp {point.timestamp} precedes last point {series[-1].timestamp}"
            )
        series.append(point)
        return point

    def get_history(self, instrument: str) -> List[PricePoint]:
        """Points for instrument, oldest first; empty if unknown."""
        return list(self._history.get(instrument, ()))

    def get_prices(self, instrument: str) -> List[float]:
        return [p.price for p in self._history.get(instrument, ())]

    def latest(self, instrument: str) -> Optional[PricePoint]:
        series = self._history.get(instrument)
        return series[-1] if series else None

    def instruments(self) -> List[str]:
        return list(self._history.keys())

    def size(self, instrument: str) -> int:
        return len(self._history.get(instrument, ()))

    def clear(self, instrument: Optional[str] = None) -> None:
        """Drop history for one instrument, or for all when omitted."""
        if instrument is None:
            self._history.clear()
        else:
            self._history.pop(instrument, None)
        logger.debug(f"Cleared price history for {instrument or 'all instruments'}")

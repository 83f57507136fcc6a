"""Pytest configuration and shared fixtures."""

from typing import List, Sequence

import pytest

from regime_pilot.models import PricePoint

# 2024-01-01 00:00:00 UTC, a Monday
BASE_TS = 1_704_067_200_000
MINUTE_MS = 60_000


def make_history(
    prices: Sequence[float],
    instrument: str = "BTC/USD",
    start: int = BASE_TS,
    step_ms: int = MINUTE_MS,
) -> List[PricePoint]:
    """Build a price history with evenly spaced timestamps."""
    return [
        PricePoint(instrument=instrument, price=float(price), timestamp=start + i * step_ms)
        for i, price in enumerate(prices)
    ]


def flat_then(level: float, count: int, *tail: float) -> List[float]:
    """``count`` points at ``level`` followed by ``tail``."""
    return [level] * count + list(tail)


def trending_up_prices(last: float = 49760.0) -> List[float]:
    """99 points climbing by 100 from 40000, then ``last``."""
    return [40000.0 + 100 * i for i in range(99)] + [last]


def triangle_wave(low: float, high: float, step: float, count: int) -> List[float]:
    """Bounce between low and high in fixed steps, ending on a rising leg."""
    prices = []
    price, direction = low, 1
    for _ in range(count):
        prices.append(price)
        if price + direction * step > high or price + direction * step < low:
            direction = -direction
        price += direction * step
    return prices


@pytest.fixture
def history_factory():
    """Build PricePoint histories from plain price lists."""
    return make_history


@pytest.fixture
def flat_history():
    """60 points flat at 100."""
    return make_history(flat_then(100.0, 60))

"""Technical indicator calculation module for Regime Pilot."""

from typing import List, Sequence

import numpy as np
import pandas as pd


class IndicatorCalculator:
    """Calculates indicators over plain price sequences.

    All methods take the most recent price last. Windows that ask for more
    points than are available fall back to using every point.
    """

    def __init__(self, rsi_period: int = 14):
        """Initialize indicator calculator.

        Args:
            rsi_period: Number of price changes used for RSI (default 14)
        """
        self.rsi_period = rsi_period

    @staticmethod
    def to_series(prices: Sequence[float]) -> pd.Series:
        return pd.Series(list(prices), dtype=float)

    def sma(self, prices: Sequence[float], period: int) -> float:
        """Simple moving average of the last ``period`` prices.

        Args:
            prices: Price sequence
            period: Window length

        Returns:
            Mean of the window, or of every price when fewer are available
        """
        if len(prices) == 0:
            return 0.0
        return float(self.to_series(prices).tail(period).mean())

    def returns(self, prices: Sequence[float]) -> List[float]:
        """Fractional returns between consecutive prices."""
        if len(prices) < 2:
            return []
        return self.to_series(prices).pct_change().dropna().tolist()

    def volatility(self, prices: Sequence[float]) -> float:
        """Population standard deviation of consecutive returns."""
        rets = self.returns(prices)
        if not rets:
            return 0.0
        return float(np.std(rets))

    def mean_abs_return(self, prices: Sequence[float]) -> float:
        rets = self.returns(prices)
        if not rets:
            return 0.0
        return float(np.mean(np.abs(rets)))

    def pct_change_from(self, prices: Sequence[float], lookback: int) -> float:
        """Percentage change of the last price versus ``prices[-lookback]``.

        Args:
            prices: Price sequence
            lookback: Negative index distance of the reference price

        Returns:
            Change in percent
        """
        reference = prices[-lookback]
        return (prices[-1] - reference) / reference * 100

    def rsi(self, prices: Sequence[float], period: int = None) -> float:
        """Relative Strength Index over the last ``period`` price changes.

        RSI = 100 - (100 / (1 + RS)) with RS = average gain / average loss,
        both simple averages over the window.

        Args:
            prices: Price sequence, at least ``period + 1`` long
            period: RSI period (defaults to the configured one)

        Returns:
            RSI value (0-100), 100 when there were no losses
        """
        period = period or self.rsi_period
        window = self.to_series(prices).tail(period + 1)
        delta = window.diff().dropna()

        gain = delta.where(delta > 0, 0.0)
        loss = (-delta).where(delta < 0, 0.0)

        avg_gain = float(gain.sum()) / period
        avg_loss = float(loss.sum()) / period

        if avg_loss == 0:
            return 100.0
        rs = avg_gain / avg_loss
        return float(np.clip(100 - (100 / (1 + rs)), 0, 100))

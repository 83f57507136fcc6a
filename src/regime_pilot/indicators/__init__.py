"""Indicator calculations."""

from .calculator import IndicatorCalculator

__all__ = ["IndicatorCalculator"]

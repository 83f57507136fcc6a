"""Risk management: fees, capital, leverage sizing and protective levels."""

from .capital import CapitalConfig, CapitalLedger, CapitalStats
from .fees import FeeCalculation, FeeModel, FeeSchedule
from .leverage import AdaptiveLeverageSizer, LeverageConfig, TradeSize
from .protection import CloseDecision, DynamicLevels, DynamicProtectionEngine, ProtectionConfig
from .support_resistance import SupportResistance, SupportResistanceFinder

__all__ = [
    "CapitalConfig",
    "CapitalLedger",
    "CapitalStats",
    "FeeCalculation",
    "FeeModel",
    "FeeSchedule",
    "AdaptiveLeverageSizer",
    "LeverageConfig",
    "TradeSize",
    "CloseDecision",
    "DynamicLevels",
    "DynamicProtectionEngine",
    "ProtectionConfig",
    "SupportResistance",
    "SupportResistanceFinder",
]

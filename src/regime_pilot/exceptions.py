"""Exceptions raised by Regime Pilot components."""


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


class PriceFeedError(Exception):
    """Raised when an upstream price source cannot provide a price."""
    pass


class OrderExecutionError(Exception):
    """Raised when an order executor rejects or fails an order."""
    pass

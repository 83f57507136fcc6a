"""Core data models for the Regime Pilot trading engine."""

import math
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Side(Enum):
    """Direction of a signal or position."""
    LONG = "long"
    SHORT = "short"

    @property
    def is_long(self) -> bool:
        return self is Side.LONG


class StrategyType(Enum):
    """Strategy family a signal originates from."""
    MOMENTUM = "momentum"
    RSI = "rsi"
    MEAN_REVERSION = "mean_reversion"
    BREAKOUT = "breakout"


class OrderStatus(Enum):
    """Lifecycle state of a position."""
    PENDING = "pending"
    OPEN = "open"
    FILLED = "filled"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class MarketRegime(Enum):
    """Market regime classification."""
    RANGING = "ranging"
    TRENDING_UP = "trending_up"
    TRENDING_DOWN = "trending_down"
    BREAKOUT = "breakout"
    STRONG_IMPULSE = "strong_impulse"


class SignalTier(Enum):
    """Generator tier that produced a signal."""
    BASELINE = "baseline"      # no pre-computed profitability
    AGGRESSIVE = "aggressive"  # carries a ProfitEstimate
    SMART = "smart"            # carries a ProfitEstimate and SmartSizing


class CloseReason(Enum):
    """Reason for closing a position."""
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    TRAILING_STOP = "trailing_stop"
    MANUAL = "manual"


def new_id(prefix: str) -> str:
    """Build a unique identifier with a readable prefix."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


@dataclass(frozen=True)
class PricePoint:
    """A single price observation for an instrument."""
    instrument: str
    price: float
    timestamp: int  # epoch milliseconds

    def __post_init__(self):
        if not math.isfinite(self.price) or self.price <= 0:
            raise ValueError(f"price must be a positive finite number, got {self.price}")


@dataclass(frozen=True)
class ProfitEstimate:
    """Fee-aware profitability estimate attached to aggressive and smart signals.

    Attributes:
        expected_profit: Net P&L estimate after fees (currency units)
        risk_reward_ratio: Expected move divided by assumed risk
        urgency: 0-100, how quickly the signal should be acted on
        target_price: Exit price the estimate was computed against
    """
    expected_profit: float
    risk_reward_ratio: float
    urgency: float
    target_price: float

    def __post_init__(self):
        if self.risk_reward_ratio < 0:
            raise ValueError("risk_reward_ratio must be >= 0")
        if not 0 <= self.urgency <= 100:
            raise ValueError("urgency must be between 0 and 100")


@dataclass(frozen=True)
class SmartSizing:
    """Regime-derived leverage and size carried by smart signals."""
    regime: MarketRegime
    optimal_leverage: int
    optimal_size: float

    def __post_init__(self):
        if self.optimal_leverage < 1:
            raise ValueError("optimal_leverage must be >= 1")
        if self.optimal_size <= 0:
            raise ValueError("optimal_size must be > 0")


@dataclass(frozen=True)
class Signal:
    """Proposed trade direction with supporting confidence and reason.

    The ``tier`` decides which payload is present: baseline signals carry
    neither ``estimate`` nor ``sizing``, aggressive signals carry an
    ``estimate``, smart signals carry both.
    """
    id: str
    instrument: str
    side: Side
    price: float
    timestamp: int
    strategy: StrategyType
    confidence: float
    reason: str
    tier: SignalTier = SignalTier.BASELINE
    estimate: Optional[ProfitEstimate] = None
    sizing: Optional[SmartSizing] = None

    def __post_init__(self):
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be between 0 and 100, got {self.confidence}")
        if self.price <= 0:
            raise ValueError("price must be > 0")
        if self.tier is SignalTier.BASELINE and (self.estimate or self.sizing):
            raise ValueError("baseline signals carry no estimate or sizing")
        if self.tier is SignalTier.AGGRESSIVE and (self.estimate is None or self.sizing):
            raise ValueError("aggressive signals carry an estimate and no sizing")
        if self.tier is SignalTier.SMART and (self.estimate is None or self.sizing is None):
            raise ValueError("smart signals carry an estimate and sizing")

    @property
    def expected_profit(self) -> Optional[float]:
        return self.estimate.expected_profit if self.estimate else None

    @property
    def risk_reward_ratio(self) -> Optional[float]:
        return self.estimate.risk_reward_ratio if self.estimate else None

    @property
    def urgency(self) -> Optional[float]:
        return self.estimate.urgency if self.estimate else None

    @property
    def target_price(self) -> Optional[float]:
        return self.estimate.target_price if self.estimate else None

    @property
    def regime(self) -> Optional[MarketRegime]:
        return self.sizing.regime if self.sizing else None

    @property
    def optimal_leverage(self) -> Optional[int]:
        return self.sizing.optimal_leverage if self.sizing else None

    @property
    def optimal_size(self) -> Optional[float]:
        return self.sizing.optimal_size if self.sizing else None


@dataclass
class Position:
    """Open or closed position, owned by the orchestrator.

    Protective levels are stored as percentages of entry price.
    """
    id: str
    instrument: str
    side: Side
    entry_price: float
    current_price: float
    quantity: float
    leverage: int
    strategy: StrategyType
    created_at: int
    status: OrderStatus = OrderStatus.OPEN
    closed_at: Optional[int] = None
    pnl: Optional[float] = None
    pnl_percentage: Optional[float] = None
    stop_loss_pct: Optional[float] = None
    take_profit_pct: Optional[float] = None
    strategy_id: Optional[str] = None
    signal_confidence: float = 70.0
    peak_price: Optional[float] = None  # best favourable price seen while open
    close_reason: Optional[CloseReason] = None
    realized_pnl: Optional[float] = None  # net of fees, set on close

    def __post_init__(self):
        if self.entry_price <= 0:
            raise ValueError("entry_price must be > 0")
        if self.quantity <= 0:
            raise ValueError("quantity must be > 0")
        if self.leverage < 1:
            raise ValueError("leverage must be >= 1")

    @property
    def is_long(self) -> bool:
        return self.side is Side.LONG

    @property
    def is_open(self) -> bool:
        return self.status is OrderStatus.OPEN

    def price_diff(self, price: float) -> float:
        """Favourable price distance from entry (negative when losing)."""
        if self.is_long:
            return price - self.entry_price
        return self.entry_price - price

    def calc_pnl(self, price: float) -> float:
        """Gross leveraged P&L at price."""
        return self.price_diff(price) * self.quantity * self.leverage

    def calc_pnl_pct(self, price: float) -> float:
        """Leveraged P&L percentage at price."""
        return self.price_diff(price) / self.entry_price * 100 * self.leverage

    def update_peak(self, price: float) -> None:
        """Track the most favourable price reached."""
        if self.peak_price is None:
            self.peak_price = price
        elif self.is_long:
            self.peak_price = max(self.peak_price, price)
        else:
            self.peak_price = min(self.peak_price, price)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "instrument": self.instrument,
            "side": self.side.value,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "quantity": self.quantity,
            "leverage": self.leverage,
            "strategy": self.strategy.value,
            "created_at": self.created_at,
            "status": self.status.value,
            "closed_at": self.closed_at,
            "pnl": self.pnl,
            "pnl_percentage": self.pnl_percentage,
            "stop_loss_pct": self.stop_loss_pct,
            "take_profit_pct": self.take_profit_pct,
            "strategy_id": self.strategy_id,
            "signal_confidence": self.signal_confidence,
            "peak_price": self.peak_price,
            "close_reason": self.close_reason.value if self.close_reason else None,
            "realized_pnl": self.realized_pnl,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            instrument=data["instrument"],
            side=Side(data["side"]),
            entry_price=data["entry_price"],
            current_price=data.get("current_price", data["entry_price"]),
            quantity=data["quantity"],
            leverage=data["leverage"],
            strategy=StrategyType(data["strategy"]),
            created_at=data["created_at"],
            status=OrderStatus(data.get("status", "open")),
            closed_at=data.get("closed_at"),
            pnl=data.get("pnl"),
            pnl_percentage=data.get("pnl_percentage"),
            stop_loss_pct=data.get("stop_loss_pct"),
            take_profit_pct=data.get("take_profit_pct"),
            strategy_id=data.get("strategy_id"),
            signal_confidence=data.get("signal_confidence", 70.0),
            peak_price=data.get("peak_price"),
            close_reason=CloseReason(data["close_reason"]) if data.get("close_reason") else None,
            realized_pnl=data.get("realized_pnl"),
        )


@dataclass
class TradingStrategy:
    """User-configured strategy driving signal generation for one instrument."""
    id: str
    name: str
    type: StrategyType
    instrument: str
    enabled: bool = True
    min_confidence: float = 60.0
    max_positions: int = 3
    created_at: int = 0
    last_signal_at: Optional[int] = None
    total_trades: int = 0
    closed_trades: int = 0
    winning_trades: int = 0
    total_pnl: float = 0.0

    @property
    def win_rate(self) -> float:
        """Share of closed trades that were profitable (0-100).

        ``total_trades`` counts opened positions; only closed ones are rated.
        """
        if self.closed_trades == 0:
            return 0.0
        return self.winning_trades / self.closed_trades * 100

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "instrument": self.instrument,
            "enabled": self.enabled,
            "min_confidence": self.min_confidence,
            "max_positions": self.max_positions,
            "created_at": self.created_at,
            "last_signal_at": self.last_signal_at,
            "total_trades": self.total_trades,
            "closed_trades": self.closed_trades,
            "winning_trades": self.winning_trades,
            "total_pnl": self.total_pnl,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TradingStrategy":
        return cls(
            id=data["id"],
            name=data["name"],
            type=StrategyType(data["type"]),
            instrument=data["instrument"],
            enabled=data.get("enabled", True),
            min_confidence=data.get("min_confidence", 60.0),
            max_positions=data.get("max_positions", 3),
            created_at=data.get("created_at", 0),
            last_signal_at=data.get("last_signal_at"),
            total_trades=data.get("total_trades", 0),
            closed_trades=data.get("closed_trades", 0),
            winning_trades=data.get("winning_trades", 0),
            total_pnl=data.get("total_pnl", 0.0),
        )


@dataclass
class BotStatus:
    """Aggregate status recomputed at the end of every tick."""
    is_running: bool = False
    active_strategies: int = 0
    active_positions: int = 0
    total_pnl: float = 0.0
    total_pnl_percentage: float = 0.0
    last_update: int = 0
    tick_count: int = 0
    skipped_ticks: int = 0


@dataclass(frozen=True)
class MarketAnalysis:
    """Market metrics derived from price history.

    Attributes:
        volatility: 0-1, 1 being very volatile
        trend_strength: 0-1
        confidence: 0-100, signal confidence folded into the analysis
        recent_performance: -1 to 1, last 10 vs previous 10 average
        volume: 0-1, synthesized from volatility (no volume feed)
        is_default: True when history was too short and neutral defaults apply
    """
    volatility: float = 0.5
    trend_strength: float = 0.5
    confidence: float = 50.0
    recent_performance: float = 0.0
    volume: float = 0.5
    is_default: bool = False

    def __post_init__(self):
        if not 0 <= self.volatility <= 1:
            raise ValueError("volatility must be between 0 and 1")
        if not 0 <= self.trend_strength <= 1:
            raise ValueError("trend_strength must be between 0 and 1")
        if not 0 <= self.confidence <= 100:
            raise ValueError("confidence must be between 0 and 100")

    def with_confidence(self, confidence: float) -> "MarketAnalysis":
        """Copy of this analysis carrying a signal's confidence."""
        return MarketAnalysis(
            volatility=self.volatility,
            trend_strength=self.trend_strength,
            confidence=clamp(confidence, 0, 100),
            recent_performance=self.recent_performance,
            volume=self.volume,
            is_default=self.is_default,
        )


@dataclass(frozen=True)
class RegimeAnalysis:
    """Result of regime detection."""
    regime: MarketRegime
    confidence: float
    strength: float
    support_level: Optional[float] = None
    resistance_level: Optional[float] = None
    trend_direction: Optional[Side] = None
    impulse_strength: Optional[float] = None
    range_top: Optional[float] = None
    range_bottom: Optional[float] = None
    sufficient_data: bool = True


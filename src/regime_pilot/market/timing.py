"""Historical timing analysis.

Buckets price movements by UTC weekday and hour, learns how often each
bucket produced a significant move, and gates new entries on it.
Weekdays are numbered 0 (Sunday) to 6 (Saturday).
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import pandas as pd

from regime_pilot.exceptions import ConfigValidationError
from regime_pilot.models import PricePoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimingConfig:
    """Timing analysis thresholds. Movements are fractions (0.01 = 1%)."""
    min_points: int = 100
    success_move: float = 0.01
    good_success_rate: float = 0.55
    good_avg_move: float = 0.005
    best_success_rate: float = 0.5
    best_avg_move: float = 0.005
    block_confidence: float = 0.4
    best_entry_limit: int = 5

    def validate(self) -> None:
        errors: List[str] = []
        if self.min_points < 2:
            errors.append("min_points must be >= 2")
        for name in ("good_success_rate", "best_success_rate", "block_confidence"):
            if not 0 <= getattr(self, name) <= 1:
                errors.append(f"{name} must be between 0 and 1")
        if self.success_move < 0:
            errors.append("success_move must be >= 0")
        if self.best_entry_limit < 1:
            errors.append("best_entry_limit must be >= 1")
        if errors:
            raise ConfigValidationError("\n".join(errors))


@dataclass(frozen=True)
class HistoricalPattern:
    """Movement statistics for one (weekday, hour) bucket."""
    day_of_week: int
    hour_of_day: int
    average_movement: float
    success_rate: float
    volatility: float
    samples: int

    @property
    def confidence(self) -> float:
        return self.success_rate * (1 - self.volatility)


@dataclass(frozen=True)
class BestEntryPoint:
    day_of_week: int
    hour_of_day: int
    expected_movement: float
    confidence: float
    reason: str


@dataclass(frozen=True)
class TimingVerdict:
    is_good: bool
    reason: str
    confidence: float


def utc_bucket(moment: datetime) -> tuple:
    """(weekday with Sunday=0, hour) of a moment in UTC."""
    moment = moment.astimezone(timezone.utc)
    return (moment.weekday() + 1) % 7, moment.hour


class HistoricalTimingAnalyzer:
    """Learns per-bucket movement patterns and judges entry timing."""

    def __init__(self, config: Optional[TimingConfig] = None):
        self.config = config or TimingConfig()
        self.config.validate()
        self._patterns: Dict[str, List[HistoricalPattern]] = {}

    def analyze_historical_patterns(
        self,
        instrument: str,
        history: Sequence[PricePoint],
    ) -> List[HistoricalPattern]:
        """Rebuild the pattern set for an instrument.

        Each consecutive pair of points contributes one absolute movement,
        bucketed by the later point's UTC weekday and hour. Bucket volatility
        is the average of the running population standard deviation taken
        after every sample beyond the first.

        Args:
            instrument: Instrument symbol
            history: Price history, oldest first

        Returns:
            The new patterns; empty (and nothing stored) below min_points
        """
        if len(history) < self.config.min_points:
            return []

        df = pd.DataFrame(
            {"timestamp": [p.timestamp for p in history], "price": [p.price for p in history]}
        )
        moments = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
        df["day"] = (moments.dt.dayofweek + 1) % 7
        df["hour"] = moments.dt.hour
        df["move"] = df["price"].pct_change().abs()
        df = df.iloc[1:]

        patterns: List[HistoricalPattern] = []
        for (day, hour), group in df.groupby(["day", "hour"], sort=True):
            moves = group["move"]
            running_std = moves.expanding().std(ddof=0).iloc[1:]
            patterns.append(HistoricalPattern(
                day_of_week=int(day),
                hour_of_day=int(hour),
                average_movement=float(moves.mean()),
                success_rate=float((moves > self.config.success_move).mean()),
                volatility=float(running_std.mean()) if len(running_std) else 0.0,
                samples=len(moves),
            ))

        self._patterns[instrument] = patterns
        logger.debug(f"{instrument}: rebuilt {len(patterns)} timing patterns from {len(history)} points")
        return patterns

    def get_patterns(self, instrument: str) -> List[HistoricalPattern]:
        return list(self._patterns.get(instrument, []))

    def get_current_pattern(
        self,
        instrument: str,
        now: Optional[datetime] = None,
    ) -> Optional[HistoricalPattern]:
        day, hour = utc_bucket(now or datetime.now(timezone.utc))
        for pattern in self._patterns.get(instrument, []):
            if pattern.day_of_week == day and pattern.hour_of_day == hour:
                return pattern
        return None

    def is_good_time_to_trade(
        self,
        instrument: str,
        now: Optional[datetime] = None,
    ) -> TimingVerdict:
        """Judge the current UTC bucket for an instrument.

        Args:
            instrument: Instrument symbol
            now: Moment to judge (defaults to the current time)

        Returns:
            TimingVerdict; without a matching pattern trading is allowed
            with confidence 0.5
        """
        pattern = self.get_current_pattern(instrument, now)
        if pattern is None:
            return TimingVerdict(True, "No historical data for this time", 0.5)

        cfg = self.config
        is_good = (
            pattern.success_rate > cfg.good_success_rate
            and pattern.average_movement > cfg.good_avg_move
        )
        label = "favourable" if is_good else "unfavourable"
        return TimingVerdict(
            is_good=is_good,
            reason=f"Historically {label} time: {pattern.success_rate * 100:.0f}% success",
            confidence=pattern.confidence,
        )

    def should_block_entry(self, verdict: TimingVerdict) -> bool:
        """Entries are blocked when the time is bad and confidence is low."""
        return not verdict.is_good and verdict.confidence < self.config.block_confidence

    def find_best_entry_points(self, instrument: str, limit: Optional[int] = None) -> List[BestEntryPoint]:
        """Top buckets by confidence among those with good success and movement."""
        cfg = self.config
        candidates = [
            p for p in self._patterns.get(instrument, [])
            if p.success_rate > cfg.best_success_rate and p.average_movement > cfg.best_avg_move
        ]
        candidates.sort(key=lambda p: p.confidence, reverse=True)
        return [
            BestEntryPoint(
                day_of_week=p.day_of_week,
                hour_of_day=p.hour_of_day,
                expected_movement=p.average_movement,
                confidence=p.confidence,
                reason=(
                    f"Average move {p.average_movement * 100:.2f}%, "
                    f"success {p.success_rate * 100:.0f}%"
                ),
            )
            for p in candidates[: limit or cfg.best_entry_limit]
        ]

    def update_config(self, **changes) -> TimingConfig:
        config = replace(self.config, **changes)
        config.validate()
        self.config = config
        return config

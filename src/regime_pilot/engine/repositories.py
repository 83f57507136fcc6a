"""In-memory repositories for strategies and positions.

``to_records`` / ``load_records`` exchange plain dicts, which is where a
storage backend would attach.
"""

from typing import Dict, Iterable, List, Optional

from regime_pilot.models import OrderStatus, Position, TradingStrategy


class StrategyRepository:
    """Holds configured strategies in insertion order."""

    def __init__(self):
        self._strategies: Dict[str, TradingStrategy] = {}

    def add(self, strategy: TradingStrategy) -> TradingStrategy:
        if strategy.id in self._strategies:
            raise ValueError(f"Strategy {strategy.id} already exists")
        self._strategies[strategy.id] = strategy
        return strategy

    def get(self, strategy_id: str) -> Optional[TradingStrategy]:
        return self._strategies.get(strategy_id)

    def update(self, strategy_id: str, **changes) -> TradingStrategy:
        """Apply field changes to a stored strategy.

        Raises:
            KeyError: If the strategy does not exist
            AttributeError: On an unknown field
        """
        strategy = self._strategies[strategy_id]
        for name, value in changes.items():
            if not hasattr(strategy, name) or name == "id":
                raise AttributeError(f"Cannot update field '{name}'")
            setattr(strategy, name, value)
        return strategy

    def remove(self, strategy_id: str) -> Optional[TradingStrategy]:
        return self._strategies.pop(strategy_id, None)

    def all(self) -> List[TradingStrategy]:
        return list(self._strategies.values())

    def enabled(self) -> List[TradingStrategy]:
        return [s for s in self._strategies.values() if s.enabled]

    def to_records(self) -> List[dict]:
        return [s.to_dict() for s in self._strategies.values()]

    def load_records(self, records: Iterable[dict]) -> None:
        self._strategies = {}
        for record in records:
            strategy = TradingStrategy.from_dict(record)
            self._strategies[strategy.id] = strategy


class OrderRepository:
    """Holds positions, open and closed."""

    def __init__(self):
        self._positions: Dict[str, Position] = {}

    def add(self, position: Position) -> Position:
        self._positions[position.id] = position
        return position

    def get(self, position_id: str) -> Optional[Position]:
        return self._positions.get(position_id)

    def all(self) -> List[Position]:
        return list(self._positions.values())

    def open_positions(self, strategy_id: Optional[str] = None) -> List[Position]:
        return [
            p for p in self._positions.values()
            if p.status is OrderStatus.OPEN and (strategy_id is None or p.strategy_id == strategy_id)
        ]

    def to_records(self) -> List[dict]:
        return [p.to_dict() for p in self._positions.values()]

    def load_records(self, records: Iterable[dict]) -> None:
        self._positions = {}
        for record in records:
            position = Position.from_dict(record)
            self._positions[position.id] = position

"""Tests for paper execution and the in-memory repositories."""

import pytest

from regime_pilot.engine import OrderRepository, PaperOrderExecutor, StrategyRepository
from regime_pilot.exceptions import OrderExecutionError
from regime_pilot.models import OrderStatus, Position, Side, StrategyType, TradingStrategy


def make_strategy(strategy_id="strategy-1", **kwargs) -> TradingStrategy:
    return TradingStrategy(strategy_id, "BTC momentum", StrategyType.MOMENTUM, "BTC/USD", **kwargs)


def make_position(position_id="order-1", strategy_id="strategy-1", **kwargs) -> Position:
    return Position(
        id=position_id,
        instrument="BTC/USD",
        side=Side.LONG,
        entry_price=50000.0,
        current_price=50000.0,
        quantity=0.001,
        leverage=10,
        strategy=StrategyType.MOMENTUM,
        created_at=0,
        strategy_id=strategy_id,
        **kwargs,
    )


class TestPaperOrderExecutor:

    def test_create_and_close(self):
        executor = PaperOrderExecutor()
        order_id = executor.create_order("BTC/USD", Side.LONG, 0.001, 10)
        assert order_id.startswith("order-")
        assert executor.orders[order_id]["open"]
        executor.close_order(order_id)
        assert not executor.orders[order_id]["open"]

    @pytest.mark.parametrize("quantity,leverage", [(0, 10), (-1, 10), (0.001, 0)])
    def test_rejects_invalid_orders(self, quantity, leverage):
        with pytest.raises(OrderExecutionError):
            PaperOrderExecutor().create_order("BTC/USD", Side.LONG, quantity, leverage)

    def test_close_unknown(self):
        with pytest.raises(OrderExecutionError):
            PaperOrderExecutor().close_order("order-missing")


class TestStrategyRepository:

    def test_add_get_remove(self):
        repo = StrategyRepository()
        strategy = repo.add(make_strategy())
        assert repo.get("strategy-1") is strategy
        assert repo.remove("strategy-1") is strategy
        assert repo.get("strategy-1") is None
        assert repo.remove("strategy-1") is None

    def test_duplicate_id(self):
        repo = StrategyRepository()
        repo.add(make_strategy())
        with pytest.raises(ValueError):
            repo.add(make_strategy())

    def test_update(self):
        repo = StrategyRepository()
        repo.add(make_strategy())
        updated = repo.update("strategy-1", enabled=False, min_confidence=75.0)
        assert not updated.enabled
        assert updated.min_confidence == 75.0
        assert repo.enabled() == []

    @pytest.mark.parametrize("field", ["id", "unknown"])
    def test_update_rejects_field(self, field):
        repo = StrategyRepository()
        repo.add(make_strategy())
        with pytest.raises(AttributeError):
            repo.update("strategy-1", **{field: "x"})

    def test_update_unknown_strategy(self):
        with pytest.raises(KeyError):
            StrategyRepository().update("missing", enabled=False)

    def test_records_round_trip(self):
        repo = StrategyRepository()
        repo.add(make_strategy(total_trades=3))
        restored = StrategyRepository()
        restored.load_records(repo.to_records())
        assert restored.all() == repo.all()


class TestOrderRepository:

    def test_open_positions_by_strategy(self):
        repo = OrderRepository()
        repo.add(make_position("order-1", "strategy-1"))
        repo.add(make_position("order-2", "strategy-2"))
        repo.add(make_position("order-3", "strategy-1", status=OrderStatus.CLOSED))
        assert [p.id for p in repo.open_positions()] == ["order-1", "order-2"]
        assert [p.id for p in repo.open_positions("strategy-1")] == ["order-1"]
        assert len(repo.all()) == 3

    def test_records_round_trip(self):
        repo = OrderRepository()
        repo.add(make_position())
        restored = OrderRepository()
        restored.load_records(repo.to_records())
        assert restored.get("order-1") == repo.get("order-1")

"""Tests for the profitability filter."""

import pytest

from conftest import flat_then, make_history
from regime_pilot.models import ProfitEstimate, Side, Signal, SignalTier, StrategyType
from regime_pilot.risk import AdaptiveLeverageSizer, CapitalLedger, FeeModel, FeeSchedule
from regime_pilot.strategy import BaselineSignalGenerator, FilterConfig, ProfitabilityFilter

ZERO_FEES = FeeSchedule(maker_fee_pct=0, taker_fee_pct=0, funding_rate_pct=0, min_fee=0)


def make_filter(schedule=None, config=None) -> ProfitabilityFilter:
    return ProfitabilityFilter(FeeModel(schedule), AdaptiveLeverageSizer(CapitalLedger()), config)


def estimated_signal(expected_profit=1.0, risk_reward=2.0, confidence=70.0, target=101.0) -> Signal:
    return Signal(
        id="scalping-long-1",
        instrument="BTC/USD",
        side=Side.LONG,
        price=100.0,
        timestamp=0,
        strategy=StrategyType.MOMENTUM,
        confidence=confidence,
        reason="test",
        tier=SignalTier.AGGRESSIVE,
        estimate=ProfitEstimate(expected_profit, risk_reward, 80, target),
    )


@pytest.fixture
def momentum_case():
    history = make_history(flat_then(100.0, 20, 104.0))
    signal = BaselineSignalGenerator().check_momentum("BTC/USD", history)
    return signal, history


class TestBaselineSignals:

    def test_accepted_without_fees(self, momentum_case):
        signal, history = momentum_case
        assert make_filter(ZERO_FEES).filter([signal], 60, history) == [signal]

    def test_rejected_when_fees_exceed_move(self, momentum_case):
        signal, history = momentum_case
        assert make_filter(FeeSchedule(min_fee=1.0)).filter([signal], 60, history) == []

    def test_three_percent_jump_rejected_under_high_fees(self):
        history = make_history(flat_then(100.0, 20, 103.0))
        signal = BaselineSignalGenerator().check_momentum("BTC/USD", history)
        assert signal.side is Side.LONG
        assert signal.confidence == pytest.approx(65.0)
        assert make_filter(FeeSchedule(min_fee=1.0)).filter([signal], 60, history) == []

    def test_rejected_below_min_confidence(self, momentum_case):
        signal, history = momentum_case
        assert make_filter(ZERO_FEES).filter([signal], 80, history) == []

    def test_exit_price(self, momentum_case):
        signal, _ = momentum_case
        assert make_filter().exit_price(signal) == pytest.approx(104.0 * 1.01)
        wider = make_filter(config=FilterConfig(baseline_exit_move_pct=2.0))
        assert wider.exit_price(signal) == pytest.approx(104.0 * 1.02)


class TestEstimatedSignals:

    def test_kept_on_estimate(self):
        signal = estimated_signal()
        # judged on the estimate alone, even under prohibitive fees
        assert make_filter(FeeSchedule(min_fee=1000)).filter([signal], 60, []) == [signal]

    @pytest.mark.parametrize("expected_profit,risk_reward", [(0.0, 2.0), (-1.0, 2.0), (1.0, 1.4)])
    def test_rejected_on_estimate(self, expected_profit, risk_reward):
        signal = estimated_signal(expected_profit, risk_reward)
        assert make_filter().filter([signal], 60, []) == []

    def test_preserves_order(self):
        first = estimated_signal(confidence=90)
        second = estimated_signal(confidence=65)
        assert make_filter().filter([first, second], 60, []) == [first, second]


class TestEvaluateAtSize:

    def test_uses_signal_target(self):
        signal = estimated_signal(target=101.0)
        model = make_filter()
        assert model.evaluate_at_size(signal, 0.02, 20)
        assert not model.evaluate_at_size(signal, 0.0001, 1)

    def test_baseline_uses_exit_move(self, momentum_case):
        signal, _ = momentum_case
        assert make_filter(ZERO_FEES).evaluate_at_size(signal, 0.001, 5)
        assert not make_filter().evaluate_at_size(signal, 0.001, 5)

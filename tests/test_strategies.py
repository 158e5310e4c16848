"""
전략 레지스트리 / SMA 교차 전략 테스트.
"""

import numpy as np
import pytest

from paper_trading.core.errors import ValidationError
from paper_trading.core.trading_strategy import SignalType
from paper_trading.strategies import create_strategy, list_strategies, strategy_from_params
from paper_trading.strategies.sma_crossover import SMACrossoverStrategy, sma


def test_registry_contains_sma_crossover():
    assert "sma_crossover" in list_strategies()
    assert isinstance(create_strategy("sma_crossover"), SMACrossoverStrategy)


def test_unknown_strategy_rejected():
    with pytest.raises(ValidationError):
        create_strategy("does_not_exist")


def test_strategy_from_params_defaults_to_sma():
    strategy = strategy_from_params({"short_period": 3})
    assert strategy.name == "sma_crossover"
    assert strategy.short_period == 3
    assert strategy.long_period == 20
    assert strategy.quantity == 100


@pytest.mark.parametrize("params", [{"short_period": 0}, {"long_period": -1}, {"short_period": 2.5}, {"quantity": 0}])
def test_invalid_params_rejected(params):
    with pytest.raises(ValidationError):
        SMACrossoverStrategy(params)


def test_sma_is_clipped_at_series_start():
    closes = np.array([10.0, 20.0, 30.0, 40.0])
    assert sma(closes, 0, 5) == 10
    assert sma(closes, 1, 5) == 15
    assert sma(closes, 3, 2) == 35


def test_golden_cross_generates_buy():
    strategy = SMACrossoverStrategy({"short_period": 1, "long_period": 2})
    closes = np.array([10.0, 9.0, 11.0])

    signal = strategy.generate_signal(closes, 2, position_open=False)
    assert signal.signal_type is SignalType.BUY
    assert signal.price == 11
    assert signal.quantity == 100


def test_death_cross_generates_sell_only_when_open():
    strategy = SMACrossoverStrategy({"short_period": 1, "long_period": 2})
    closes = np.array([10.0, 12.0, 11.0])

    assert strategy.generate_signal(closes, 2, position_open=True).signal_type is SignalType.SELL
    assert strategy.generate_signal(closes, 2, position_open=False).signal_type is SignalType.HOLD


def test_golden_cross_ignored_while_open():
    strategy = SMACrossoverStrategy({"short_period": 1, "long_period": 2})
    closes = np.array([10.0, 9.0, 11.0])
    assert strategy.generate_signal(closes, 2, position_open=True).signal_type is SignalType.HOLD

"""
백테스트 엔진 테스트.

short_period=1, long_period=2 이면 골든크로스는 "직전 하락/보합 후 상승",
데드크로스는 "직전 상승/보합 후 하락"이 되어 손으로 결과를 검증할 수 있다.
"""

from types import SimpleNamespace

import numpy as np
import pytest

import paper_trading.backtest.engine as engine_module
from paper_trading.backtest.engine import BacktestEngine
from paper_trading.core.errors import BacktestTimeoutError, ValidationError
from paper_trading.core.ledger_store import PositionStatus
from paper_trading.data.ledger import PositionLedger
from paper_trading.stores.memory_store import (
    InMemoryBarStore,
    InMemoryLedgerStore,
    InMemoryStrategyResultStore,
)

FAST = {"type": "sma_crossover", "short_period": 1, "long_period": 2}

# i=3 매수 @11, i=5 매도 @10 (-100), i=7 매수 @13, i=9 매도 @14 (+100)
CLOSES = [10, 9, 8, 11, 12, 10, 9, 13, 15, 14]


def test_handcrafted_crossovers(make_series):
    engine = BacktestEngine()
    bars = make_series(CLOSES)

    result = engine.run(FAST, "NIFTY", bars)

    assert result.total_trades == 2
    assert result.winning_trades == 1
    assert result.win_rate == pytest.approx(0.5)
    assert result.total_pnl == pytest.approx(0)

    returns = np.array([-100 / 1100, 100 / 1300])
    assert result.sharpe_ratio == pytest.approx(returns.mean() / returns.std())
    assert result.max_drawdown == pytest.approx(100)

    entries = [(p.entry_price, p.exit_price) for p in engine.positions]
    assert entries == [(11, 10), (13, 14)]
    assert engine.positions[0].entry_time.timestamp() == bars[3].epoch_time
    assert engine.positions[0].exit_time.timestamp() == bars[5].epoch_time


def test_result_period_defaults_to_bar_range(make_series):
    bars = make_series(CLOSES)
    result = BacktestEngine().run(FAST, "NIFTY", bars)
    assert result.start_time.timestamp() == bars[0].epoch_time
    assert result.end_time.timestamp() == bars[-1].epoch_time
    assert result.strategy_id == "sma_crossover"


def test_open_position_at_end_is_not_counted(make_series):
    engine = BacktestEngine()
    result = engine.run(FAST, "NIFTY", make_series([10, 9, 8, 11, 12, 13]))

    assert result.total_trades == 0
    assert len(engine.positions) == 1
    assert engine.positions[0].status is PositionStatus.OPEN


def test_backtest_is_deterministic(make_series):
    rng = np.random.default_rng(7)
    closes = list(100 * np.cumprod(1 + rng.normal(0, 0.02, 300)))
    bars = make_series(closes)
    params = {"short_period": 5, "long_period": 15}

    first = BacktestEngine().run(params, "NIFTY", bars)
    second = BacktestEngine().run(params, "NIFTY", bars)

    assert first == second
    assert first.id != second.id
    assert 0 <= first.win_rate <= 1
    assert first.max_drawdown >= 0


def test_too_few_bars_yields_zero_metrics(make_series):
    result = BacktestEngine().run({}, "NIFTY", make_series([100, 101, 102]))
    assert result.total_trades == 0
    assert result.sharpe_ratio == 0
    assert result.max_drawdown == 0
    assert result.win_rate == 0


def test_injected_ledger_receives_positions(make_series):
    ledger = PositionLedger(InMemoryLedgerStore())
    BacktestEngine(ledger=ledger).run(FAST, "NIFTY", make_series(CLOSES), strategy_id="sim-1")

    positions = ledger.list_positions(strategy_id="sim-1")
    assert len(positions) == 2
    assert all(p.status is PositionStatus.CLOSED for p in positions)
    assert ledger.get_holding("NIFTY").realized_pnl == pytest.approx(0)


def test_result_store_receives_result(make_series):
    store = InMemoryStrategyResultStore()
    result = BacktestEngine(result_store=store).run(FAST, "NIFTY", make_series(CLOSES))
    assert store.list_results("sma_crossover") == [result]


def test_empty_bars_rejected():
    with pytest.raises(ValidationError):
        BacktestEngine().run(FAST, "NIFTY", [])


def test_descending_bars_rejected(make_series):
    bars = make_series(CLOSES)
    with pytest.raises(ValidationError):
        BacktestEngine().run(FAST, "NIFTY", list(reversed(bars)))


def test_start_after_end_rejected(make_series):
    bars = make_series(CLOSES)
    with pytest.raises(ValidationError):
        BacktestEngine().run(FAST, "NIFTY", bars, start_time=bars[-1].epoch_time, end_time=bars[0].epoch_time)


def test_unknown_strategy_type_rejected(make_series):
    with pytest.raises(ValidationError):
        BacktestEngine().run({"type": "nope"}, "NIFTY", make_series(CLOSES))


def test_soft_timeout(make_series, monkeypatch):
    ticks = iter(range(0, 1000, 10))
    monkeypatch.setattr(engine_module, "time", SimpleNamespace(monotonic=lambda: next(ticks)))

    engine = BacktestEngine(timeout_seconds=5)
    with pytest.raises(BacktestTimeoutError):
        engine.run(FAST, "NIFTY", make_series(CLOSES))
    assert engine.metrics is None


def test_deploy_runs_each_instrument(make_series):
    bar_store = InMemoryBarStore()
    bar_store.upsert_bars(make_series(CLOSES, instrument="NIFTY"))
    bar_store.upsert_bars(make_series(CLOSES[::-1], instrument="BANKNIFTY"))
    result_store = InMemoryStrategyResultStore()

    results = BacktestEngine(result_store=result_store).deploy(FAST, ["NIFTY", "BANKNIFTY"], bar_store, "1m")

    assert [r.instrument for r in results] == ["NIFTY", "BANKNIFTY"]
    assert results[0].total_trades == 2
    assert len(result_store.list_results()) == 2


def test_deploy_validation(make_series):
    bar_store = InMemoryBarStore()
    bar_store.upsert_bars(make_series(CLOSES))
    engine = BacktestEngine()

    with pytest.raises(ValidationError):
        engine.deploy(FAST, [], bar_store, "1m")
    with pytest.raises(ValidationError):
        engine.deploy(FAST, ["NIFTY"], bar_store, "1m", start=200, end=100)
    with pytest.raises(ValidationError):
        engine.deploy(FAST, ["NIFTY"], bar_store, "7x")
    with pytest.raises(ValidationError):
        engine.deploy(FAST, ["MISSING"], bar_store, "1m")

"""
성과 지표 계산 테스트.
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from paper_trading.backtest.metrics import calculate_metrics, max_drawdown, sharpe_ratio
from paper_trading.core.ledger_store import Position, PositionStatus, Side

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def closed(entry, exit_price, qty=100, minutes=0):
    return Position(
        instrument="NIFTY",
        side=Side.BUY,
        entry_price=entry,
        quantity=qty,
        entry_time=T0 + timedelta(minutes=minutes),
        status=PositionStatus.CLOSED,
        exit_price=exit_price,
        exit_time=T0 + timedelta(minutes=minutes + 1),
        pnl=(exit_price - entry) * qty,
    )


def test_no_trades_gives_zero_metrics():
    metrics = calculate_metrics([])
    assert metrics.total_trades == 0
    assert metrics.win_rate == 0
    assert metrics.sharpe_ratio == 0
    assert metrics.max_drawdown == 0
    assert metrics.total_pnl == 0


def test_basic_counts():
    metrics = calculate_metrics([closed(100, 110), closed(100, 95, minutes=2), closed(100, 100, minutes=4)])
    assert metrics.total_trades == 3
    assert metrics.winning_trades == 1
    assert metrics.losing_trades == 2
    assert metrics.win_rate == pytest.approx(1 / 3)
    assert metrics.total_pnl == pytest.approx(500)


def test_sharpe_uses_population_std():
    trades = [closed(100, 110), closed(100, 95, minutes=2), closed(200, 210, minutes=4)]
    returns = np.array([0.1, -0.05, 0.05])
    expected = returns.mean() / returns.std(ddof=0)

    assert calculate_metrics(trades).sharpe_ratio == pytest.approx(expected)


def test_sharpe_zero_when_no_dispersion():
    assert sharpe_ratio([0.1, 0.1]) == 0
    assert sharpe_ratio([0.2]) == 0
    assert sharpe_ratio([]) == 0


def test_sharpe_zero_for_identical_returns_with_rounding_noise():
    assert sharpe_ratio([0.1, 0.1, 0.1]) == 0
    assert sharpe_ratio([0.3] * 7) == 0
    assert sharpe_ratio([1e6 / 3] * 5) == 0


def test_sharpe_keeps_small_real_dispersion():
    assert sharpe_ratio([0.1, 0.1 + 1e-6]) == pytest.approx(0.1000005 / 5e-7)


def test_max_drawdown_divides_by_peak():
    # 누적: 1000 → 400 → 1200 → 600
    assert max_drawdown([1000, -600, 800, -600]) == pytest.approx(0.6)


def test_max_drawdown_with_non_positive_peak():
    # 고점 0에서 -100 하락 → max(peak, 1) = 1로 나눔
    assert max_drawdown([-100, 100]) == pytest.approx(100)


def test_trades_ordered_by_exit_time():
    late_win = closed(100, 120, minutes=10)
    early_loss = closed(100, 90, minutes=0)
    metrics = calculate_metrics([late_win, early_loss])
    # 손실이 먼저 → 고점 0에서 -1000
    assert metrics.max_drawdown == pytest.approx(1000)


def test_summary_renders():
    text = calculate_metrics([closed(100, 110)]).summary()
    assert "백테스트 성과 리포트" in text
    assert calculate_metrics([]).to_dict()["total_trades"] == 0

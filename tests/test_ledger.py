"""
포지션 원장 테스트.

가중평균 단가 전이, 실현손익 누적, 청산 규칙, all-or-nothing 롤백을 확인한다.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from paper_trading.core.errors import NotFoundError, ValidationError
from paper_trading.core.ledger_store import Position, PositionStatus, Side
from paper_trading.data.ledger import HoldingState, PositionLedger, apply_fill
from paper_trading.stores.memory_store import InMemoryLedgerStore

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ─── apply_fill ─────────────────────────────────────────────────────────────

def test_fill_from_flat():
    state, realized = apply_fill(HoldingState(), 10, 100)
    assert state == HoldingState(10, 100, 0)
    assert realized == 0


def test_same_direction_fill_averages_price():
    state, realized = apply_fill(HoldingState(10, 100, 0), 10, 110)
    assert state.quantity == 20
    assert state.average_price == pytest.approx(105)
    assert realized == 0


def test_partial_reduction_keeps_average():
    state, realized = apply_fill(HoldingState(10, 100, 0), -4, 120)
    assert realized == pytest.approx(80)
    assert state.quantity == 6
    assert state.average_price == 100
    assert state.realized_pnl == pytest.approx(80)


def test_full_close_resets_average():
    state, realized = apply_fill(HoldingState(10, 100, 5), -10, 90)
    assert realized == pytest.approx(-100)
    assert state.quantity == 0
    assert state.average_price == 0
    assert state.realized_pnl == pytest.approx(-95)


def test_flip_sets_average_to_fill_price():
    state, realized = apply_fill(HoldingState(5, 100, 0), -8, 110)
    assert realized == pytest.approx(50)
    assert state.quantity == -3
    assert state.average_price == 110


def test_short_cover_realizes_inverse():
    state, realized = apply_fill(HoldingState(-10, 50, 0), 4, 40)
    assert realized == pytest.approx(40)
    assert state.quantity == -6
    assert state.average_price == 50


# ─── PositionLedger ─────────────────────────────────────────────────────────

def test_open_then_close_realizes_pnl(ledger):
    position = ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=T0)
    closed = ledger.close(position.id, 110, exit_time=T0 + timedelta(minutes=5))

    assert closed.status is PositionStatus.CLOSED
    assert closed.pnl == pytest.approx(100)
    assert closed.exit_price == 110
    assert ledger.get_holding("NIFTY").realized_pnl == pytest.approx(100)


def test_partial_close_by_opposite_fill(ledger):
    ledger.open_or_add("NIFTY", "BUY", 100, 10, time=T0)
    ledger.open_or_add("NIFTY", "SELL", 120, 4, time=T0 + timedelta(minutes=1))

    holding = ledger.get_holding("NIFTY")
    assert holding.quantity == 6
    assert holding.average_price == 100
    assert holding.realized_pnl == pytest.approx(80)


def test_holding_quantity_is_signed_sum_of_fills(ledger):
    fills = [("BUY", 10, 5), ("BUY", 12, 3), ("SELL", 11, 10), ("BUY", 9, 4), ("SELL", 13, 1.5)]
    for i, (side, price, qty) in enumerate(fills):
        ledger.open_or_add("BANKNIFTY", side, price, qty, time=T0 + timedelta(minutes=i))

    expected = sum(qty if side == "BUY" else -qty for side, _, qty in fills)
    assert ledger.get_holding("BANKNIFTY").quantity == pytest.approx(expected)


def test_holding_tracks_value_at_fill_price(ledger):
    ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=T0)
    ledger.open_or_add("NIFTY", Side.BUY, 110, 10, time=T0)

    holding = ledger.get_holding("NIFTY")
    assert holding.total_value == pytest.approx(2200)
    assert holding.unrealized_pnl == pytest.approx(100)


def test_short_position_pnl(ledger):
    position = ledger.open_or_add("NIFTY", Side.SELL, 100, 10, time=T0)
    closed = ledger.close(position.id, 90, exit_time=T0)
    assert closed.pnl == pytest.approx(100)


@pytest.mark.parametrize("price, quantity", [(0, 10), (-1, 10), (100, 0), (100, -5), (float("nan"), 1)])
def test_non_positive_fill_rejected_without_mutation(ledger, price, quantity):
    with pytest.raises(ValidationError):
        ledger.open_or_add("NIFTY", Side.BUY, price, quantity, time=T0)
    assert ledger.get_holding("NIFTY") is None
    assert ledger.list_positions() == []


def test_unknown_side_rejected(ledger):
    with pytest.raises(ValidationError):
        ledger.open_or_add("NIFTY", "HOLD", 100, 1, time=T0)


def test_close_twice_fails(ledger):
    position = ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=T0)
    ledger.close(position.id, 105, exit_time=T0)
    with pytest.raises(NotFoundError):
        ledger.close(position.id, 106, exit_time=T0)
    assert ledger.get_holding("NIFTY").realized_pnl == pytest.approx(50)


def test_close_unknown_position_fails(ledger):
    with pytest.raises(NotFoundError):
        ledger.close("does-not-exist", 100)


def test_close_before_entry_rejected(ledger):
    position = ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=T0)
    with pytest.raises(ValidationError):
        ledger.close(position.id, 105, exit_time=T0 - timedelta(seconds=1))
    assert ledger.get_position(position.id).is_open


def test_close_with_invalid_price_rejected(ledger):
    position = ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=T0)
    with pytest.raises(ValidationError):
        ledger.close(position.id, 0)
    assert ledger.get_position(position.id).is_open


def test_mark_to_market_updates_unrealized_only(ledger):
    position = ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=T0)
    ledger.mark_to_market("NIFTY", 103)

    holding = ledger.get_holding("NIFTY")
    assert holding.unrealized_pnl == pytest.approx(30)
    assert holding.total_value == pytest.approx(1030)
    assert holding.realized_pnl == 0
    assert ledger.get_position(position.id).unrealized_pnl == pytest.approx(30)


def test_pnl_report(ledger):
    win = ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=T0)
    loss = ledger.open_or_add("NIFTY", Side.BUY, 100, 5, time=T0 + timedelta(minutes=1))
    ledger.open_or_add("NIFTY", Side.BUY, 100, 1, time=T0 + timedelta(minutes=2))
    ledger.close(win.id, 110, exit_time=T0 + timedelta(minutes=3))
    ledger.close(loss.id, 96, exit_time=T0 + timedelta(minutes=3))
    ledger.mark_to_market("NIFTY", 102)

    report = ledger.pnl_report("NIFTY")
    assert report.realized_pnl == pytest.approx(80)
    assert report.unrealized_pnl == pytest.approx(2)
    assert report.total_pnl == pytest.approx(82)
    assert report.total_trades == 2
    assert report.winning_trades == 1
    assert report.win_rate == pytest.approx(0.5)
    assert len(report.positions) == 3


def test_list_positions_filters(ledger):
    a = ledger.open_or_add("NIFTY", Side.BUY, 100, 1, time=T0, strategy_id="sim")
    ledger.open_or_add("BANKNIFTY", Side.BUY, 100, 1, time=T0 + timedelta(minutes=1))
    ledger.close(a.id, 101, exit_time=T0 + timedelta(minutes=2))

    assert [p.id for p in ledger.list_positions(strategy_id="sim")] == [a.id]
    assert len(ledger.list_positions(status=PositionStatus.OPEN)) == 1
    assert len(ledger.list_positions(instrument="BANKNIFTY")) == 1


class FailingHoldingStore(InMemoryLedgerStore):
    """upsert_holding이 실패하는 저장소."""

    def __init__(self):
        super().__init__()
        self.fail = False

    def upsert_holding(self, *args, **kwargs):
        if self.fail:
            raise RuntimeError("holding write failed")
        return super().upsert_holding(*args, **kwargs)


def test_failed_holding_write_rolls_back_open():
    store = FailingHoldingStore()
    ledger = PositionLedger(store)
    store.fail = True

    with pytest.raises(RuntimeError):
        ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=T0)
    assert store.list_positions() == []
    assert store.get_holding("NIFTY") is None


def test_failed_holding_write_rolls_back_close():
    store = FailingHoldingStore()
    ledger = PositionLedger(store)
    position = ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=T0)
    store.fail = True

    with pytest.raises(RuntimeError):
        ledger.close(position.id, 110, exit_time=T0)

    restored = store.get_position(position.id)
    assert restored.is_open
    assert restored.pnl is None
    assert store.get_holding("NIFTY").realized_pnl == 0


class FailingMarkStore(InMemoryLedgerStore):
    """update_holding_mark만 실패하는 저장소."""

    def update_holding_mark(self, *args, **kwargs):
        raise RuntimeError("mark write failed")


def test_failed_mark_restores_positions():
    store = FailingMarkStore()
    ledger = PositionLedger(store)
    first = ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=T0)
    second = ledger.open_or_add("NIFTY", Side.SELL, 90, 2, time=T0 + timedelta(minutes=1))

    with pytest.raises(RuntimeError):
        ledger.mark_to_market("NIFTY", 120)

    assert store.get_position(first.id).unrealized_pnl == 0
    assert store.get_position(second.id).unrealized_pnl == 0
    assert store.get_holding("NIFTY").unrealized_pnl == pytest.approx(-80)


def test_concurrent_fills_on_same_instrument():
    ledger = PositionLedger(InMemoryLedgerStore())

    def worker():
        for _ in range(50):
            ledger.open_or_add("NIFTY", Side.BUY, 100, 1, time=T0)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    holding = ledger.get_holding("NIFTY")
    assert holding.quantity == 200
    assert len(ledger.list_positions("NIFTY")) == 200


# ─── 시각 정규화 ────────────────────────────────────────────────────────────

def test_naive_entry_time_closes_with_default_exit(ledger):
    position = ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=datetime(2024, 1, 1))
    assert position.entry_time == T0
    assert position.entry_time.tzinfo is not None

    closed = ledger.close(position.id, 110)
    assert closed.pnl == pytest.approx(100)
    assert closed.exit_time.tzinfo is not None


def test_epoch_times_are_accepted(ledger):
    position = ledger.open_or_add("NIFTY", Side.BUY, 100, 1, time=1_704_067_200)
    closed = ledger.close(position.id, 101, exit_time=1_704_067_260)

    assert closed.entry_time == T0
    assert closed.exit_time == T0 + timedelta(minutes=1)


def test_naive_exit_before_aware_entry_rejected(ledger):
    position = ledger.open_or_add("NIFTY", Side.BUY, 100, 10, time=T0)
    with pytest.raises(ValidationError):
        ledger.close(position.id, 105, exit_time=datetime(2023, 12, 31, 23, 59))
    assert ledger.get_position(position.id).is_open


# ─── Holding 없는 포지션 ────────────────────────────────────────────────────

def test_close_without_holding_leaves_holdings_untouched():
    store = InMemoryLedgerStore()
    ledger = PositionLedger(store)
    position = store.insert_position(Position("NIFTY", Side.BUY, 100, 10, T0))

    closed = ledger.close(position.id, 104, exit_time=T0 + timedelta(minutes=1))

    assert closed.pnl == pytest.approx(40)
    assert store.get_holding("NIFTY") is None
    assert ledger.pnl_report("NIFTY").realized_pnl == pytest.approx(40)

"""
메모리 저장소 테스트.
"""

from datetime import datetime, timezone

import pytest

from paper_trading.core.bar_source import Bar
from paper_trading.core.errors import ValidationError
from paper_trading.core.ledger_store import Position, Side
from paper_trading.core.order_store import Order, OrderStatus
from paper_trading.core.strategy_store import StrategyRecord
from paper_trading.stores.memory_store import (
    InMemoryBarStore,
    InMemoryLedgerStore,
    InMemoryOrderStore,
    InMemoryStrategyStore,
)

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_fetch_bars_sorted_and_filtered(make_series):
    store = InMemoryBarStore()
    bars = make_series([1, 2, 3, 4, 5])
    store.upsert_bars(list(reversed(bars)))

    assert [b.close for b in store.fetch_bars("NIFTY", "1m")] == [1, 2, 3, 4, 5]
    window = store.fetch_bars("NIFTY", "1m", start=bars[1].epoch_time, end=bars[3].epoch_time)
    assert [b.close for b in window] == [2, 3, 4]
    assert len(store.fetch_bars("NIFTY", "1m", limit=2)) == 2
    assert store.fetch_bars("NIFTY", "5m") == []


def test_upsert_replaces_same_key(make_bar):
    store = InMemoryBarStore()
    store.upsert_bars([make_bar(100, epoch=1_000)])
    store.upsert_bars([make_bar(105, epoch=1_000)])
    assert [b.close for b in store.fetch_bars("NIFTY", "1m")] == [105]


def test_fetch_previous_bar(make_series):
    store = InMemoryBarStore()
    bars = make_series([1, 2, 3])
    store.upsert_bars(bars)

    assert store.fetch_previous_bar("NIFTY", "1m", bars[2].epoch_time) == bars[1]
    assert store.fetch_previous_bar("NIFTY", "1m", bars[2].epoch_time + 1) == bars[2]
    assert store.fetch_previous_bar("NIFTY", "1m", bars[0].epoch_time) is None
    assert store.get_instruments() == ["NIFTY"]


def test_ledger_store_accumulates_realized():
    store = InMemoryLedgerStore()
    store.upsert_holding("NIFTY", 10, 100, 50, 0, 1000)
    holding = store.upsert_holding("NIFTY", 6, 100, 30, 0, 600)
    assert holding.realized_pnl == 80
    assert holding.quantity == 6


def test_ledger_store_returns_copies():
    store = InMemoryLedgerStore()
    position = Position("NIFTY", Side.BUY, 100, 1, T0)
    store.insert_position(position)

    fetched = store.get_position(position.id)
    fetched.unrealized_pnl = 999
    assert store.get_position(position.id).unrealized_pnl == 0

    with pytest.raises(ValueError):
        store.insert_position(position)
    assert store.delete_position(position.id)
    assert not store.delete_position(position.id)


def test_bar_from_row_and_validate():
    bar = Bar.from_row("NIFTY", "1m", [1_700_000_000, 10, 12, 9, 11, 500, 1000])
    bar.validate()
    assert bar.key == ("NIFTY", "1m", 1_700_000_000)

    with pytest.raises(ValidationError):
        Bar.from_row("NIFTY", "1m", [1, 2, 3])
    with pytest.raises(ValidationError):
        Bar.from_row("NIFTY", "1m", [1_700_000_000, 10, 9, 8, 11, 0, 0]).validate()
    with pytest.raises(ValidationError):
        Bar.from_row("NIFTY", "1m", [1_700_000_000, 10, 12, 9, 11, -1, 0]).validate()


def test_order_store_pages_newest_first():
    store = InMemoryOrderStore()
    for minute in range(3):
        store.insert_order(Order("NIFTY", Side.BUY, 1, 100 + minute, T0.replace(minute=minute)))

    assert [o.price for o in store.list_orders(limit=2)] == [102, 101]
    assert [o.price for o in store.list_orders(limit=2, offset=2)] == [100]
    assert store.count_orders("NIFTY", OrderStatus.PENDING) == 3
    assert store.count_orders(status=OrderStatus.FILLED) == 0


def test_strategy_store_unique_name_and_copies():
    store = InMemoryStrategyStore()
    record = StrategyRecord("fast", {"short_period": 1}, ["NIFTY"])
    store.insert_strategy(record)

    with pytest.raises(ValueError):
        store.insert_strategy(StrategyRecord("fast", {}, ["NIFTY"]))

    fetched = store.get_strategy_by_name("fast")
    fetched.params["short_period"] = 99
    fetched.instruments.append("BANKNIFTY")
    assert store.get_strategy(record.id).params == {"short_period": 1}
    assert store.get_strategy(record.id).instruments == ["NIFTY"]
    assert store.delete_strategy(record.id)
    assert store.get_strategy_by_name("fast") is None

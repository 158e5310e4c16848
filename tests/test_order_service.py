"""
주문 서비스 테스트.

PENDING → FILLED / CANCELLED 전이와 원장 반영, 실패 시 복구를 확인한다.
"""

from datetime import datetime, timedelta, timezone

import pytest

from paper_trading.core.errors import NotFoundError, ValidationError
from paper_trading.core.ledger_store import Side
from paper_trading.core.order_store import OrderStatus
from paper_trading.data.ledger import PositionLedger
from paper_trading.data.order_service import OrderService
from paper_trading.stores.memory_store import InMemoryLedgerStore, InMemoryOrderStore

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def service(ledger):
    return OrderService(ledger, InMemoryOrderStore())


def test_create_order_fills_immediately(service):
    order = service.create_order("NIFTY", "BUY", quantity=10, price=100, order_time=T0)

    assert order.status is OrderStatus.FILLED
    assert order.filled_quantity == 10
    assert order.filled_price == 100
    assert order.filled_time == T0

    holding = service.ledger.get_holding("NIFTY")
    assert (holding.quantity, holding.average_price) == (10, 100)
    [position] = service.ledger.list_positions("NIFTY")
    assert position.entry_time == T0


def test_pending_order_does_not_touch_ledger(service):
    order = service.create_order("NIFTY", "SELL", 5, 200, order_time=T0, auto_fill=False)

    assert order.status is OrderStatus.PENDING
    assert service.ledger.get_holding("NIFTY") is None
    assert service.ledger.list_positions() == []


def test_fill_with_partial_quantity_and_new_price(service):
    order = service.create_order("NIFTY", Side.BUY, 10, 100, order_time=T0, auto_fill=False)

    filled = service.fill_order(order.id, quantity=4, price=99, fill_time=T0 + timedelta(seconds=5))

    assert filled.filled_quantity == 4
    assert filled.filled_price == 99
    holding = service.ledger.get_holding("NIFTY")
    assert (holding.quantity, holding.average_price) == (4, 99)


def test_fill_more_than_ordered_rejected(service):
    order = service.create_order("NIFTY", "BUY", 10, 100, auto_fill=False)
    with pytest.raises(ValidationError):
        service.fill_order(order.id, quantity=11)
    assert service.get_order(order.id).is_pending


def test_filled_order_cannot_be_filled_or_cancelled(service):
    order = service.create_order("NIFTY", "BUY", 1, 100, order_time=T0)

    with pytest.raises(ValidationError):
        service.fill_order(order.id)
    with pytest.raises(ValidationError):
        service.cancel_order(order.id)
    assert len(service.ledger.list_positions()) == 1


def test_cancel_pending_order(service):
    order = service.create_order("NIFTY", "BUY", 1, 100, auto_fill=False)

    cancelled = service.cancel_order(order.id)

    assert cancelled.status is OrderStatus.CANCELLED
    with pytest.raises(ValidationError):
        service.fill_order(order.id)
    with pytest.raises(ValidationError):
        service.cancel_order(order.id)
    assert service.ledger.list_positions() == []


def test_unknown_order(service):
    with pytest.raises(NotFoundError):
        service.fill_order("nope")
    with pytest.raises(NotFoundError):
        service.cancel_order("nope")


@pytest.mark.parametrize("kwargs", [
    {"instrument": "NIFTY 50", "side": "BUY", "quantity": 1, "price": 1},
    {"instrument": "NIFTY", "side": "HOLD", "quantity": 1, "price": 1},
    {"instrument": "NIFTY", "side": "BUY", "quantity": 0, "price": 1},
    {"instrument": "NIFTY", "side": "BUY", "quantity": 1, "price": -5},
])
def test_invalid_order_rejected(service, kwargs):
    with pytest.raises(ValidationError):
        service.create_order(**kwargs)
    assert service.list_orders() == ([], 0)


def test_list_orders_newest_first_with_total(service):
    for i in range(5):
        service.create_order("NIFTY", "BUY", 1, 100 + i, order_time=T0 + timedelta(minutes=i), auto_fill=i % 2 == 0)
    service.create_order("BANKNIFTY", "BUY", 1, 100, order_time=T0)

    orders, total = service.list_orders("NIFTY", limit=2)
    assert total == 5
    assert [o.price for o in orders] == [104, 103]

    pending, pending_total = service.list_orders(status=OrderStatus.PENDING)
    assert pending_total == 2
    assert {o.price for o in pending} == {101, 103}

    with pytest.raises(ValidationError):
        service.list_orders(limit=0)


class FailingLedgerStore(InMemoryLedgerStore):
    def insert_position(self, position):
        raise RuntimeError("position write failed")


def test_ledger_failure_restores_pending_order():
    service = OrderService(PositionLedger(FailingLedgerStore()), InMemoryOrderStore())
    order = service.create_order("NIFTY", "BUY", 1, 100, auto_fill=False)

    with pytest.raises(RuntimeError):
        service.fill_order(order.id)

    restored = service.get_order(order.id)
    assert restored.is_pending
    assert restored.filled_quantity == 0

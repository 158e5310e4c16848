"""
모의매매 주문 서비스.

[ 역할 ]
    주문 생명주기를 관리하고, 체결된 주문만 원장에 fill로 반영.
        PENDING ──fill_order()──→ FILLED    (PositionLedger.open_or_add 호출)
           └────cancel_order()──→ CANCELLED (원장 변화 없음)
    FILLED/CANCELLED는 최종 상태. 다시 체결하거나 취소할 수 없다.

[ 체결 규칙 ]
    - 체결 수량/가격을 생략하면 주문 수량/가격으로 체결
    - 체결 수량은 주문 수량을 넘을 수 없다 (부분 체결 후 잔량은 남기지 않음)
    - 원장 반영이 실패하면 주문을 PENDING으로 되돌린다

[ 호출하는 곳 ]
    - 실시간 모의매매 경로 (create_order는 기본적으로 즉시 체결)
"""

import logging
import threading
from dataclasses import replace
from typing import Optional

from paper_trading.core.bar_source import validate_instrument
from paper_trading.core.errors import NotFoundError, ValidationError
from paper_trading.core.ledger_store import TimeLike, to_datetime, utc_now
from paper_trading.core.order_store import Order, OrderStatus, OrderStore
from paper_trading.data.ledger import PositionLedger, coerce_side, require_positive

logger = logging.getLogger("paper_trading.orders")


class OrderService:
    """주문 → 체결 → 원장 반영.

    사용 예:
        service = OrderService(ledger, InMemoryOrderStore())
        order = service.create_order("NIFTY", "BUY", quantity=10, price=100)
    """

    def __init__(self, ledger: PositionLedger, order_store: OrderStore):
        self.ledger = ledger
        self.order_store = order_store
        # 같은 주문의 상태 확인-변경 구간 직렬화
        self._lock = threading.Lock()

    def create_order(
        self,
        instrument: str,
        side: str,
        quantity: float,
        price: float,
        order_time: Optional[TimeLike] = None,
        strategy_id: Optional[str] = None,
        auto_fill: bool = True,
    ) -> Order:
        """주문 생성. auto_fill이면 주문 시각/가격으로 즉시 체결한 결과를 반환."""
        validate_instrument(instrument)
        order = Order(
            instrument=instrument,
            side=coerce_side(side),
            quantity=require_positive("quantity", quantity),
            price=require_positive("price", price),
            order_time=to_datetime(order_time) if order_time is not None else utc_now(),
            strategy_id=strategy_id,
        )
        self.order_store.insert_order(order)
        logger.info(f"주문 접수: {order.id} {instrument} {order.side.value} {order.quantity:g} @ {order.price:,.4f}")

        if auto_fill:
            return self.fill_order(order.id, fill_time=order.order_time)
        return order

    def fill_order(
        self,
        order_id: str,
        quantity: Optional[float] = None,
        price: Optional[float] = None,
        fill_time: Optional[TimeLike] = None,
    ) -> Order:
        """PENDING 주문 체결.

        Raises:
            NotFoundError: 주문 없음
            ValidationError: PENDING이 아님, 체결 수량이 주문 수량 초과, 가격/수량 <= 0
        """
        with self._lock:
            order = self.get_order(order_id)
            if not order.is_pending:
                raise ValidationError(f"대기 상태가 아닌 주문: {order_id} ({order.status.value})")

            filled_quantity = order.quantity if quantity is None else require_positive("quantity", quantity)
            filled_price = order.price if price is None else require_positive("price", price)
            if filled_quantity > order.quantity:
                raise ValidationError(f"체결 수량({filled_quantity:g})이 주문 수량({order.quantity:g})보다 큼")

            now = utc_now()
            filled = replace(
                order,
                status=OrderStatus.FILLED,
                filled_quantity=filled_quantity,
                filled_price=filled_price,
                filled_time=to_datetime(fill_time) if fill_time is not None else now,
                updated_at=now,
            )
            self.order_store.update_order(filled)
            try:
                self.ledger.open_or_add(
                    order.instrument,
                    order.side,
                    price=filled_price,
                    quantity=filled_quantity,
                    time=filled.filled_time,
                    strategy_id=order.strategy_id,
                )
            except Exception:
                logger.error(f"원장 반영 실패, 주문 대기 상태로 복구: {order_id}")
                self.order_store.update_order(order)
                raise

        logger.info(f"체결: {order_id} {filled_quantity:g} @ {filled_price:,.4f}")
        return filled

    def cancel_order(self, order_id: str) -> Order:
        """PENDING 주문만 취소 가능."""
        with self._lock:
            order = self.get_order(order_id)
            if not order.is_pending:
                raise ValidationError(f"대기 주문만 취소할 수 있음: {order_id} ({order.status.value})")
            cancelled = replace(order, status=OrderStatus.CANCELLED, updated_at=utc_now())
            self.order_store.update_order(cancelled)

        logger.info(f"주문 취소: {order_id}")
        return cancelled

    def get_order(self, order_id: str) -> Order:
        order = self.order_store.get_order(order_id)
        if order is None:
            raise NotFoundError(f"주문 없음: {order_id}")
        return order

    def list_orders(
        self,
        instrument: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[Order], int]:
        """(최근 주문 목록, 조건에 맞는 전체 건수)."""
        if limit <= 0 or offset < 0:
            raise ValidationError(f"잘못된 페이지 범위: limit={limit}, offset={offset}")
        orders = self.order_store.list_orders(instrument, status, limit, offset)
        return orders, self.order_store.count_orders(instrument, status)

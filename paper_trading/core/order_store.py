"""
주문(Order) 모델과 저장소 추상 클래스 정의.

[ 역할 ]
    모의매매 주문의 생명주기(PENDING → FILLED / CANCELLED)를 표현.
    체결된 주문만 원장(data/ledger.py)에 fill로 반영된다.

[ 구현체 ]
    - stores/memory_store.py::InMemoryOrderStore
    - data/clickhouse_store.py::ClickHouseOrderStore
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from paper_trading.core.ledger_store import Side, new_id, utc_now


class OrderStatus(Enum):
    PENDING = "PENDING"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"


@dataclass
class Order:
    instrument: str
    side: Side
    quantity: float
    price: float
    order_time: datetime
    id: str = field(default_factory=new_id)
    status: OrderStatus = OrderStatus.PENDING
    filled_quantity: float = 0.0
    filled_price: Optional[float] = None
    filled_time: Optional[datetime] = None
    strategy_id: Optional[str] = None
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_pending(self) -> bool:
        return self.status is OrderStatus.PENDING


class OrderStore(ABC):
    """주문 영속화 추상 클래스."""

    @abstractmethod
    def insert_order(self, order: Order) -> Order:
        ...

    @abstractmethod
    def get_order(self, order_id: str) -> Optional[Order]:
        ...

    @abstractmethod
    def update_order(self, order: Order) -> Order:
        ...

    @abstractmethod
    def list_orders(
        self,
        instrument: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Order]:
        """order_time 내림차순 (최근 주문 먼저)."""
        ...

    @abstractmethod
    def count_orders(
        self,
        instrument: Optional[str] = None,
        status: Optional[OrderStatus] = None,
    ) -> int:
        ...

"""
원장(Holding/Position) 모델과 저장소 추상 클래스 정의.

[ 역할 ]
    모의매매 원장이 다루는 엔티티와 영속화 인터페이스를 정의.
    원장 로직(data/ledger.py)은 이 인터페이스에만 의존하므로
    메모리/ClickHouse 구현체를 자유롭게 교체할 수 있다.

[ 구현체 ]
    - stores/memory_store.py::InMemoryLedgerStore
    - data/clickhouse_store.py::ClickHouseLedgerStore

[ 핵심 규칙 ]
    upsert_holding()의 realized_pnl은 덮어쓰기가 아니라 누적이다:
        stored.realized_pnl + realized_pnl_delta
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


class Side(Enum):
    """체결 방향. Position에서는 포지션을 연 방향을 의미."""
    BUY = "BUY"
    SELL = "SELL"

    @property
    def sign(self) -> int:
        return 1 if self is Side.BUY else -1


class PositionStatus(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


TimeLike = Union[datetime, int, float]


def to_datetime(value: TimeLike) -> datetime:
    """epoch 초 또는 datetime을 UTC aware datetime으로 변환.

    naive datetime은 UTC로 간주한다. 원장에 기록되는 시각은 모두 이 함수를 거친다.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.fromtimestamp(value, tz=timezone.utc)


@dataclass
class Holding:
    """종목별 합산 보유 현황 (가중평균 단가 기준)."""
    instrument: str
    quantity: float = 0.0         # 부호 있음: + 롱, - 숏, 0 무포지션
    average_price: float = 0.0    # quantity == 0이면 0
    realized_pnl: float = 0.0     # 누적 실현 손익
    unrealized_pnl: float = 0.0   # 마지막 평가 손익
    total_value: float = 0.0      # quantity * 마지막 가격
    updated_at: Optional[datetime] = None


@dataclass
class Position:
    """개별 체결 단위(lot). OPEN → CLOSED 한 번만 전이."""
    instrument: str
    side: Side
    entry_price: float
    quantity: float
    entry_time: datetime
    id: str = field(default_factory=new_id)
    status: PositionStatus = PositionStatus.OPEN
    strategy_id: Optional[str] = None
    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    pnl: Optional[float] = None           # CLOSED 이후에만 채워짐
    unrealized_pnl: float = 0.0           # OPEN 상태 평가 손익

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    def pnl_at(self, price: float) -> float:
        """주어진 가격 기준 손익. BUY는 (가격 - 진입가), SELL은 반대 부호."""
        return (price - self.entry_price) * self.quantity * self.side.sign


@dataclass(frozen=True)
class StrategyResult:
    """백테스트 1회 결과 요약. 생성 후 변경하지 않는다.

    id/created_at은 식별용이라 동등 비교에서 제외된다
    (같은 입력으로 두 번 돌리면 결과가 같아야 하므로).
    """
    strategy_id: str
    instrument: str
    total_trades: int
    winning_trades: int
    total_pnl: float
    max_drawdown: float
    win_rate: float
    sharpe_ratio: float
    start_time: datetime
    end_time: datetime
    id: str = field(default_factory=new_id, compare=False)
    created_at: datetime = field(default_factory=utc_now, compare=False)


class LedgerStore(ABC):
    """Holding/Position 영속화 추상 클래스."""

    # ─── Holding ────────────────────────────────────────────────────────

    @abstractmethod
    def get_holding(self, instrument: str) -> Optional[Holding]:
        ...

    @abstractmethod
    def list_holdings(self) -> list[Holding]:
        ...

    @abstractmethod
    def upsert_holding(
        self,
        instrument: str,
        quantity: float,
        average_price: float,
        realized_pnl_delta: float,
        unrealized_pnl: float,
        total_value: float,
    ) -> Holding:
        """Holding 저장. realized_pnl = 기존값 + realized_pnl_delta (원자적 누적)."""
        ...

    @abstractmethod
    def update_holding_mark(
        self,
        instrument: str,
        unrealized_pnl: float,
        total_value: float,
    ) -> Optional[Holding]:
        """평가 손익/평가 금액만 갱신. Holding이 없으면 None."""
        ...

    # ─── Position ───────────────────────────────────────────────────────

    @abstractmethod
    def insert_position(self, position: Position) -> Position:
        ...

    @abstractmethod
    def get_position(self, position_id: str) -> Optional[Position]:
        ...

    @abstractmethod
    def update_position(self, position: Position) -> Position:
        ...

    @abstractmethod
    def delete_position(self, position_id: str) -> bool:
        ...

    @abstractmethod
    def list_positions(
        self,
        instrument: Optional[str] = None,
        status: Optional[PositionStatus] = None,
        strategy_id: Optional[str] = None,
    ) -> list[Position]:
        """entry_time 오름차순으로 반환."""
        ...


class StrategyResultStore(ABC):
    """백테스트 결과 저장소."""

    @abstractmethod
    def save_result(self, result: StrategyResult) -> StrategyResult:
        ...

    @abstractmethod
    def list_results(self, strategy_id: Optional[str] = None) -> list[StrategyResult]:
        ...

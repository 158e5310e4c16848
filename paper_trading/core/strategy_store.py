"""
전략 레코드 모델과 저장소 추상 클래스 정의.

[ 역할 ]
    이름이 붙은 전략 설정(파라미터 + 대상 종목)과 운용 상태를 저장.
    전략 로직 자체는 strategies/ 레지스트리가 담당하고,
    여기서는 "어떤 파라미터로 어떤 종목에 돌릴지"만 기록한다.

[ 상태 ]
    INACTIVE (생성 시 기본) / ACTIVE / TESTING (백테스트 배포 중)

[ 구현체 ]
    - stores/memory_store.py::InMemoryStrategyStore
    - data/clickhouse_store.py::ClickHouseStrategyStore
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from paper_trading.core.ledger_store import new_id, utc_now


class StrategyStatus(Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    TESTING = "TESTING"


@dataclass
class StrategyRecord:
    name: str
    params: dict[str, Any]
    instruments: list[str]
    description: Optional[str] = None
    id: str = field(default_factory=new_id)
    status: StrategyStatus = StrategyStatus.INACTIVE
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


class StrategyStore(ABC):
    """전략 레코드 영속화 추상 클래스. name은 저장소 안에서 유일하다."""

    @abstractmethod
    def insert_strategy(self, record: StrategyRecord) -> StrategyRecord:
        ...

    @abstractmethod
    def get_strategy(self, strategy_id: str) -> Optional[StrategyRecord]:
        ...

    @abstractmethod
    def get_strategy_by_name(self, name: str) -> Optional[StrategyRecord]:
        ...

    @abstractmethod
    def update_strategy(self, record: StrategyRecord) -> StrategyRecord:
        ...

    @abstractmethod
    def delete_strategy(self, strategy_id: str) -> bool:
        ...

    @abstractmethod
    def list_strategies(self, status: Optional[StrategyStatus] = None) -> list[StrategyRecord]:
        """created_at 내림차순."""
        ...

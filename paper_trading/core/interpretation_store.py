"""
OI 해석 결과 저장소 추상 클래스.

[ 역할 ]
    봉 키(BarKey) 단위로 OI 해석을 일괄 저장(upsert)하는 인터페이스.
    저장값은 캐시일 뿐이며, 언제든 봉 시리즈에서 다시 계산할 수 있다.

[ 구현체 ]
    - stores/memory_store.py::InMemoryInterpretationStore
    - data/clickhouse_store.py::ClickHouseInterpretationStore
"""

from abc import ABC, abstractmethod
from typing import Optional

from paper_trading.analysis.oi_classifier import OIInterpretation
from paper_trading.core.bar_source import BarKey


class InterpretationStore(ABC):

    @abstractmethod
    def set_interpretations(self, updates: list[tuple[BarKey, OIInterpretation]]) -> int:
        """일괄 저장. 같은 키는 덮어쓴다. 저장 건수 반환."""
        ...

    @abstractmethod
    def get_interpretation(self, key: BarKey) -> Optional[OIInterpretation]:
        ...

    @abstractmethod
    def clear_interpretations(self, keys: list[BarKey]) -> int:
        """저장된 해석 삭제. 더 이상 계산할 수 없는 봉(데이터 품질 거부)에 쓴다."""
        ...

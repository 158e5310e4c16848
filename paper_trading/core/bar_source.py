"""
봉(Bar) 데이터 제공 추상 클래스 정의.

[ 역할 ]
    OHLCV + 미결제약정(OI) 봉 데이터를 제공하는 인터페이스.
    데이터 소스(메모리, ClickHouse 등)에 독립적으로 분류기/백테스트에 데이터 공급.

[ 구현체 ]
    - stores/memory_store.py::InMemoryBarStore   (테스트/백테스트용)
    - data/clickhouse_store.py::ClickHouseBarStore

[ 호출하는 곳 ]
    - analysis/oi_enrichment.py::OIEnrichmentService (일괄 OI 분석)
    - backtest/engine.py::BacktestEngine.deploy() (종목별 봉 조회)
"""

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, NamedTuple, Optional

from paper_trading.core.errors import ValidationError

# 허용 타임프레임
VALID_TIMEFRAMES = (
    "1m", "3m", "5m", "15m", "30m",
    "1h", "2h", "4h", "6h", "8h", "12h",
    "1d", "3d", "1w", "1M",
)

_INSTRUMENT_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,50}$")


class BarKey(NamedTuple):
    """봉 식별자. (종목, 타임프레임, epoch 초)가 같으면 같은 봉."""
    instrument: str
    timeframe: str
    epoch_time: int


@dataclass(frozen=True)
class Bar:
    """단일 봉 데이터. 기록된 이후에는 변경하지 않는다."""
    instrument: str
    timeframe: str
    epoch_time: int          # epoch 초, 시리즈 내에서 엄격히 증가
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    open_interest: float = 0.0

    @property
    def key(self) -> BarKey:
        return BarKey(self.instrument, self.timeframe, self.epoch_time)

    def validate(self) -> None:
        """OHLC 관계, 거래량/OI 부호 검증. 실패 시 ValidationError."""
        validate_instrument(self.instrument)
        validate_timeframe(self.timeframe)

        if not isinstance(self.epoch_time, int) or self.epoch_time <= 0:
            raise ValidationError(f"잘못된 epoch_time: {self.epoch_time!r}")

        for name in ("open", "high", "low", "close"):
            value = getattr(self, name)
            if not _is_number(value) or value <= 0:
                raise ValidationError(f"잘못된 {name} 가격: {value!r} (t={self.epoch_time})")

        if self.high < max(self.open, self.close) or self.low > min(self.open, self.close):
            raise ValidationError(f"OHLC 관계 오류 (t={self.epoch_time})")
        if self.high < self.low:
            raise ValidationError(f"high < low (t={self.epoch_time})")

        if not _is_number(self.volume) or self.volume < 0:
            raise ValidationError(f"잘못된 거래량: {self.volume!r} (t={self.epoch_time})")
        if not _is_number(self.open_interest) or self.open_interest < 0:
            raise ValidationError(f"잘못된 미결제약정: {self.open_interest!r} (t={self.epoch_time})")

    @classmethod
    def from_row(cls, instrument: str, timeframe: str, row: Iterable) -> "Bar":
        """[epoch, open, high, low, close, volume, oi] 배열에서 생성."""
        values = list(row)
        if len(values) != 7:
            raise ValidationError("봉 배열은 정확히 7개 원소여야 함 (epoch, o, h, l, c, v, oi)")
        epoch_time, open_, high, low, close, volume, oi = values
        return cls(
            instrument=instrument,
            timeframe=timeframe,
            epoch_time=int(epoch_time),
            open=float(open_),
            high=float(high),
            low=float(low),
            close=float(close),
            volume=float(volume),
            open_interest=float(oi),
        )


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_instrument(instrument: str) -> None:
    """종목 코드: 1~50자, 영문/숫자/밑줄/하이픈."""
    if not isinstance(instrument, str) or not _INSTRUMENT_PATTERN.match(instrument):
        raise ValidationError(f"잘못된 종목 코드: {instrument!r}")


def validate_timeframe(timeframe: str) -> None:
    if timeframe not in VALID_TIMEFRAMES:
        raise ValidationError(
            f"잘못된 타임프레임: {timeframe!r}. 사용 가능: {', '.join(VALID_TIMEFRAMES)}"
        )


class BarSource(ABC):
    """봉 데이터 조회 추상 클래스.

    반환되는 시퀀스는 항상 epoch_time 오름차순이어야 한다.
    """

    @abstractmethod
    def fetch_bars(
        self,
        instrument: str,
        timeframe: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[Bar]:
        """봉 목록 조회.

        Args:
            instrument: 종목 코드
            timeframe: 타임프레임 (예: '1m', '1d')
            start: 시작 epoch (포함)
            end: 종료 epoch (포함)
            limit: 최대 개수 (가장 오래된 것부터)
        """
        ...

    @abstractmethod
    def fetch_previous_bar(
        self,
        instrument: str,
        timeframe: str,
        before_epoch: int,
    ) -> Optional[Bar]:
        """before_epoch 직전 봉. 없으면 None."""
        ...


class BarStore(BarSource):
    """쓰기까지 지원하는 봉 저장소. 같은 키는 덮어쓴다 (upsert)."""

    @abstractmethod
    def upsert_bars(self, bars: list[Bar]) -> int:
        """봉 저장. 저장된 개수 반환."""
        ...

    # ─── 시리즈 조회/관리 ──────────────────────────────────────────────

    @abstractmethod
    def get_latest_bar(self, instrument: str, timeframe: str) -> Optional[Bar]:
        ...

    @abstractmethod
    def count_bars(self, instrument: str, timeframe: Optional[str] = None) -> int:
        """timeframe이 없으면 종목의 모든 타임프레임 합계."""
        ...

    @abstractmethod
    def get_instruments(self) -> list[str]:
        ...

    @abstractmethod
    def get_timeframes(self, instrument: Optional[str] = None) -> list[str]:
        """저장된 타임프레임 목록. instrument가 없으면 전체 종목 기준."""
        ...

    @abstractmethod
    def delete_bars(self, instrument: str, timeframe: Optional[str] = None) -> int:
        """봉 삭제. 삭제된 개수 반환."""
        ...

"""
미결제약정(OI) 해석 분류기.

[ 역할 ]
    연속된 두 봉(이전, 현재)의 가격 변화와 OI 변화를 교차하여
    시장 포지셔닝을 분류. 상태와 I/O가 없는 순수 함수.

[ 분류 표 ]
                  OI ↑               OI ↓
    가격 ↑     LONG_BUILDUP       SHORT_COVERING
    가격 ↓     SHORT_BUILDUP      LONG_UNWINDING

    가격 또는 OI 중 하나라도 FLAT이면 INCONCLUSIVE.

[ 임계값 ]
    가격 FLAT: |변화율| < 0.1%
    OI  FLAT: |변화율| < 1.0%
    고정 상수 (설정 대상 아님).

[ 신뢰도 ]
    HIGH:   |가격%| > 0.5 이고 |OI%| > 2
    MEDIUM: |가격%| > 0.2 이고 |OI%| > 1
    LOW:    그 외 (INCONCLUSIVE는 항상 LOW)

[ 호출하는 곳 ]
    - analysis/oi_enrichment.py::OIEnrichmentService
"""

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from paper_trading.core.bar_source import Bar
from paper_trading.core.errors import DataQualityError

PRICE_FLAT_THRESHOLD_PCT = 0.1
OI_FLAT_THRESHOLD_PCT = 1.0

HIGH_PRICE_PCT = 0.5
HIGH_OI_PCT = 2.0
MEDIUM_PRICE_PCT = 0.2
MEDIUM_OI_PCT = 1.0


class Direction(Enum):
    UP = "UP"
    DOWN = "DOWN"
    FLAT = "FLAT"


class OIInterpretation(Enum):
    LONG_BUILDUP = "LONG_BUILDUP"
    SHORT_BUILDUP = "SHORT_BUILDUP"
    LONG_UNWINDING = "LONG_UNWINDING"
    SHORT_COVERING = "SHORT_COVERING"
    INCONCLUSIVE = "INCONCLUSIVE"


class Confidence(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


# (가격 방향, OI 방향) → 해석
_QUADRANTS: dict[tuple[Direction, Direction], OIInterpretation] = {
    (Direction.UP, Direction.UP): OIInterpretation.LONG_BUILDUP,
    (Direction.DOWN, Direction.UP): OIInterpretation.SHORT_BUILDUP,
    (Direction.DOWN, Direction.DOWN): OIInterpretation.LONG_UNWINDING,
    (Direction.UP, Direction.DOWN): OIInterpretation.SHORT_COVERING,
}


@dataclass(frozen=True)
class OIAnalysis:
    """봉 한 쌍에서 파생된 값. 저장은 캐시일 뿐, 언제든 다시 계산 가능."""
    price_change: float
    price_change_pct: float
    oi_change: float
    oi_change_pct: float
    price_direction: Direction
    oi_direction: Direction
    interpretation: OIInterpretation
    confidence: Confidence

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data


def _direction(change: float, change_pct: float, threshold: float) -> Direction:
    if abs(change_pct) < threshold:
        return Direction.FLAT
    return Direction.UP if change > 0 else Direction.DOWN


def _confidence(price_change_pct: float, oi_change_pct: float) -> Confidence:
    price_abs = abs(price_change_pct)
    oi_abs = abs(oi_change_pct)
    if price_abs > HIGH_PRICE_PCT and oi_abs > HIGH_OI_PCT:
        return Confidence.HIGH
    if price_abs > MEDIUM_PRICE_PCT and oi_abs > MEDIUM_OI_PCT:
        return Confidence.MEDIUM
    return Confidence.LOW


def check_pair(previous: Bar, current: Bar) -> None:
    """분류 가능한 쌍인지 검사. 문제가 있으면 DataQualityError."""
    if previous.instrument != current.instrument or previous.timeframe != current.timeframe:
        raise DataQualityError(
            f"서로 다른 시리즈: {previous.instrument}/{previous.timeframe} vs "
            f"{current.instrument}/{current.timeframe}"
        )
    if current.epoch_time <= previous.epoch_time:
        raise DataQualityError(
            f"타임스탬프 역전/중복: {previous.epoch_time} -> {current.epoch_time}"
        )
    for bar in (previous, current):
        if not _finite(bar.close) or bar.close <= 0:
            raise DataQualityError(f"종가 누락/이상 (t={bar.epoch_time}): {bar.close!r}")
        if not _finite(bar.open_interest) or bar.open_interest < 0:
            raise DataQualityError(f"OI 누락/이상 (t={bar.epoch_time}): {bar.open_interest!r}")


def _finite(value) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


def classify(previous: Bar, current: Bar) -> OIAnalysis:
    """이전 봉 대비 현재 봉의 OI 해석.

    Raises:
        DataQualityError: 시리즈 불일치, 타임스탬프 역전, 가격/OI 누락
    """
    check_pair(previous, current)

    price_change = current.close - previous.close
    price_change_pct = price_change / previous.close * 100

    oi_change = current.open_interest - previous.open_interest
    oi_change_pct = (
        oi_change / previous.open_interest * 100 if previous.open_interest > 0 else 0.0
    )

    price_direction = _direction(price_change, price_change_pct, PRICE_FLAT_THRESHOLD_PCT)
    oi_direction = _direction(oi_change, oi_change_pct, OI_FLAT_THRESHOLD_PCT)

    interpretation = _QUADRANTS.get(
        (price_direction, oi_direction), OIInterpretation.INCONCLUSIVE
    )
    if interpretation is OIInterpretation.INCONCLUSIVE:
        confidence = Confidence.LOW
    else:
        confidence = _confidence(price_change_pct, oi_change_pct)

    return OIAnalysis(
        price_change=price_change,
        price_change_pct=price_change_pct,
        oi_change=oi_change,
        oi_change_pct=oi_change_pct,
        price_direction=price_direction,
        oi_direction=oi_direction,
        interpretation=interpretation,
        confidence=confidence,
    )

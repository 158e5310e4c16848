"""
OI 해석 일괄 분석(enrichment) 모듈.

[ 역할 ]
    봉 시리즈 전체에 대해 연속 쌍마다 classify()를 적용하고
    결과를 InterpretationStore에 배치 단위로 저장.
    신규 봉 저장 시 직전 봉과 비교하여 해석을 함께 기록하는 기능도 제공.

[ 실행 흐름 ]
    enrich(instrument, timeframe) 호출 시:
        1. BarSource.fetch_bars()로 시리즈 조회 (오름차순 전제, 재정렬하지 않음)
        2. i = 1..n-1 에 대해 classify(bars[i-1], bars[i])
           → DataQualityError면 해당 쌍만 건너뛰고 WARNING 로그
        3. batch_size마다 set_interpretations() 호출
           거부된 봉의 기존 해석은 clear_interpretations()로 지움
        4. EnrichmentResult 반환 (저장 건수, 전체 봉 수, 거부된 쌍)

[ 배치 크기 ]
    성능 조절용일 뿐, 개별 분류 결과에는 영향을 주지 않는다.
    같은 시리즈를 다시 돌려도 같은 값이 저장된다 (멱등).

[ 의존성 ]
    - analysis/oi_classifier.py::classify
    - core/bar_source.py::BarSource / BarStore
    - core/interpretation_store.py::InterpretationStore
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from paper_trading.analysis.oi_classifier import OIAnalysis, OIInterpretation, classify
from paper_trading.core.bar_source import (
    Bar,
    BarKey,
    BarSource,
    BarStore,
    validate_instrument,
    validate_timeframe,
)
from paper_trading.core.errors import DataQualityError, ValidationError
from paper_trading.core.interpretation_store import InterpretationStore

logger = logging.getLogger("paper_trading.oi")

DEFAULT_BATCH_SIZE = 1000
MAX_BARS_PER_STORE = 50_000


@dataclass
class EnrichmentResult:
    """enrich()/store_bars()의 반환값."""
    updated: int = 0
    total: int = 0
    rejected: list[BarKey] = field(default_factory=list)  # 데이터 품질 문제로 건너뛴 쌍의 현재 봉
    counts: dict[OIInterpretation, int] = field(default_factory=dict)


class OIEnrichmentService:
    """봉 시리즈 OI 해석 서비스.

    사용 예:
        service = OIEnrichmentService(bar_store, interpretation_store, batch_size=500)
        result = service.enrich("NIFTY", "1m")
    """

    def __init__(
        self,
        bar_source: BarSource,
        interpretation_store: InterpretationStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size <= 0:
            raise ValidationError(f"batch_size는 양수여야 함: {batch_size}")
        self.bar_source = bar_source
        self.interpretation_store = interpretation_store
        self.batch_size = batch_size

    def enrich(self, instrument: str, timeframe: str) -> EnrichmentResult:
        """시리즈 전체 재분석. 저장된 해석은 덮어쓴다."""
        validate_instrument(instrument)
        validate_timeframe(timeframe)

        bars = self.bar_source.fetch_bars(instrument, timeframe)
        result = EnrichmentResult(total=len(bars))
        if len(bars) < 2:
            return result

        pending: list[tuple[BarKey, OIInterpretation]] = []
        for previous, current in zip(bars, bars[1:]):
            analysis = self._classify_or_reject(previous, current, result)
            if analysis is None:
                continue
            pending.append((current.key, analysis.interpretation))
            if len(pending) >= self.batch_size:
                result.updated += self._flush(pending)
                pending = []

        if pending:
            result.updated += self._flush(pending)
        self._clear_rejected(result)

        logger.info(
            f"OI 분석 완료: {instrument}/{timeframe} 갱신 {result.updated}/{result.total}"
            f" (거부 {len(result.rejected)})"
        )
        return result

    def store_bars(self, instrument: str, timeframe: str, bars: Iterable[Bar]) -> EnrichmentResult:
        """신규 봉 저장 + OI 해석 기록.

        첫 봉은 저장소의 직전 봉과, 나머지는 신규 봉끼리 비교한다.

        Raises:
            ValidationError: 빈 목록, 개수 초과, 다른 시리즈 봉 혼입, OHLC 검증 실패
        """
        if not isinstance(self.bar_source, BarStore):
            raise ValidationError("봉 저장을 지원하지 않는 데이터 소스")
        validate_instrument(instrument)
        validate_timeframe(timeframe)

        new_bars = sorted(bars, key=lambda b: b.epoch_time)
        if not new_bars:
            raise ValidationError("봉 목록이 비어 있음")
        if len(new_bars) > MAX_BARS_PER_STORE:
            raise ValidationError(f"한 번에 최대 {MAX_BARS_PER_STORE:,}개까지 저장 가능")
        for bar in new_bars:
            if bar.instrument != instrument or bar.timeframe != timeframe:
                raise ValidationError(f"다른 시리즈의 봉 포함: {bar.key}")
            bar.validate()

        previous = self.bar_source.fetch_previous_bar(instrument, timeframe, new_bars[0].epoch_time)
        self.bar_source.upsert_bars(new_bars)

        result = EnrichmentResult(total=len(new_bars))
        pending: list[tuple[BarKey, OIInterpretation]] = []
        for current in new_bars:
            if previous is not None:
                analysis = self._classify_or_reject(previous, current, result)
                if analysis is not None:
                    pending.append((current.key, analysis.interpretation))
            previous = current

        for start in range(0, len(pending), self.batch_size):
            result.updated += self._flush(pending[start:start + self.batch_size])
        self._clear_rejected(result)
        return result

    def analyze_bar(self, instrument: str, timeframe: str, epoch_time: int) -> Optional[OIAnalysis]:
        """단일 봉의 OI 해석. 해당 봉이나 직전 봉이 없으면 None."""
        bars = self.bar_source.fetch_bars(instrument, timeframe, start=epoch_time, end=epoch_time)
        if not bars:
            return None
        previous = self.bar_source.fetch_previous_bar(instrument, timeframe, epoch_time)
        if previous is None:
            return None
        return classify(previous, bars[0])

    def _classify_or_reject(
        self,
        previous: Bar,
        current: Bar,
        result: EnrichmentResult,
    ) -> Optional[OIAnalysis]:
        try:
            analysis = classify(previous, current)
        except DataQualityError as e:
            logger.warning(f"[데이터 품질] {current.key} 해석 건너뜀: {e}")
            result.rejected.append(current.key)
            return None
        result.counts[analysis.interpretation] = result.counts.get(analysis.interpretation, 0) + 1
        return analysis

    def _flush(self, updates: list[tuple[BarKey, OIInterpretation]]) -> int:
        return self.interpretation_store.set_interpretations(list(updates))

    def _clear_rejected(self, result: EnrichmentResult) -> None:
        # 이전 실행에서 저장된 해석이 남아 있으면 재계산 결과와 어긋난다
        if result.rejected:
            self.interpretation_store.clear_interpretations(list(result.rejected))

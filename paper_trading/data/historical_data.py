"""
봉 시리즈 조회/관리 서비스.

[ 역할 ]
    BarStore 위에서 입력 검증을 거친 시리즈 단위 조회와 삭제를 제공.
    봉을 지우면 해당 봉의 OI 해석 캐시도 함께 지운다.

[ 호출하는 곳 ]
    - scripts/enrich_oi.py (--stats / --delete)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from paper_trading.core.bar_source import Bar, BarStore, validate_instrument, validate_timeframe
from paper_trading.core.interpretation_store import InterpretationStore

logger = logging.getLogger("paper_trading.bars")


@dataclass(frozen=True)
class BarStats:
    count: int
    first_bar: Optional[Bar] = None
    last_bar: Optional[Bar] = None
    price_min: Optional[float] = None   # high/low 전체 기준
    price_max: Optional[float] = None

    def summary(self) -> str:
        if self.count == 0:
            return "봉 없음"
        return (
            f"봉 {self.count:,}개 | {self.first_bar.epoch_time} ~ {self.last_bar.epoch_time} | "
            f"가격 {self.price_min:,.2f} ~ {self.price_max:,.2f}"
        )


class HistoricalDataService:

    def __init__(self, bar_store: BarStore, interpretation_store: Optional[InterpretationStore] = None):
        self.bar_store = bar_store
        self.interpretation_store = interpretation_store

    def get_latest_bar(self, instrument: str, timeframe: str) -> Optional[Bar]:
        validate_instrument(instrument)
        validate_timeframe(timeframe)
        return self.bar_store.get_latest_bar(instrument, timeframe)

    def count_bars(self, instrument: str, timeframe: Optional[str] = None) -> int:
        validate_instrument(instrument)
        if timeframe is not None:
            validate_timeframe(timeframe)
        return self.bar_store.count_bars(instrument, timeframe)

    def get_instruments(self) -> list[str]:
        return self.bar_store.get_instruments()

    def get_timeframes(self, instrument: Optional[str] = None) -> list[str]:
        if instrument is not None:
            validate_instrument(instrument)
        return self.bar_store.get_timeframes(instrument)

    def delete_bars(self, instrument: str, timeframe: Optional[str] = None) -> int:
        """봉과 그 봉의 OI 해석 삭제. 삭제된 봉 개수 반환."""
        validate_instrument(instrument)
        if timeframe is not None:
            validate_timeframe(timeframe)

        if self.interpretation_store is not None:
            timeframes = [timeframe] if timeframe is not None else self.bar_store.get_timeframes(instrument)
            keys = [bar.key for tf in timeframes for bar in self.bar_store.fetch_bars(instrument, tf)]
            if keys:
                self.interpretation_store.clear_interpretations(keys)

        deleted = self.bar_store.delete_bars(instrument, timeframe)
        logger.info(f"봉 삭제: {instrument}/{timeframe or '*'} {deleted:,}건")
        return deleted

    def bar_stats(self, instrument: str, timeframe: str) -> BarStats:
        validate_instrument(instrument)
        validate_timeframe(timeframe)

        bars = self.bar_store.fetch_bars(instrument, timeframe)
        if not bars:
            return BarStats(count=0)

        prices = [price for bar in bars for price in (bar.high, bar.low)]
        return BarStats(
            count=len(bars),
            first_bar=bars[0],
            last_bar=bars[-1],
            price_min=min(prices),
            price_max=max(prices),
        )

"""
공용 픽스처.

봉은 open = high = low = close 로 만들어 OHLC 검증을 항상 통과시킨다.
"""

import pytest

from paper_trading.core.bar_source import Bar
from paper_trading.data.ledger import PositionLedger
from paper_trading.stores.memory_store import InMemoryLedgerStore

BASE_EPOCH = 1_704_067_200  # 2024-01-01 00:00:00 UTC


@pytest.fixture
def make_bar():
    def _make(close, oi=1000.0, epoch=BASE_EPOCH, instrument="NIFTY", timeframe="1m", volume=0.0):
        return Bar(
            instrument=instrument,
            timeframe=timeframe,
            epoch_time=epoch,
            open=close,
            high=close,
            low=close,
            close=close,
            volume=volume,
            open_interest=oi,
        )
    return _make


@pytest.fixture
def make_series(make_bar):
    """종가 목록(+OI 목록)으로 1분 간격 봉 시리즈 생성."""
    def _make(closes, ois=None, instrument="NIFTY", timeframe="1m", step=60, start=BASE_EPOCH):
        ois = ois if ois is not None else [1000.0] * len(closes)
        return [
            make_bar(c, oi, start + i * step, instrument, timeframe)
            for i, (c, oi) in enumerate(zip(closes, ois))
        ]
    return _make


@pytest.fixture
def ledger():
    return PositionLedger(InMemoryLedgerStore())

"""
메모리 기반 저장소 구현.

[ 역할 ]
    외부 DB 없이 원장/봉/OI 해석/백테스트 결과를 저장.
    백테스트의 독립 원장 범위, 단위 테스트, 샘플 데이터 실행에 사용.

[ 포함 클래스 ]
    InMemoryBarStore            - core/bar_source.py::BarStore 구현체
    InMemoryInterpretationStore - core/interpretation_store.py::InterpretationStore 구현체
    InMemoryLedgerStore         - core/ledger_store.py::LedgerStore 구현체
    InMemoryStrategyResultStore - core/ledger_store.py::StrategyResultStore 구현체
    InMemoryOrderStore          - core/order_store.py::OrderStore 구현체
    InMemoryStrategyStore       - core/strategy_store.py::StrategyStore 구현체

[ 주의 ]
    조회 결과는 항상 복사본이다. 호출자가 객체를 수정해도
    update_*()를 거치지 않으면 저장 상태는 바뀌지 않는다.
"""

import threading
from bisect import bisect_left
from dataclasses import replace
from typing import Optional

from paper_trading.analysis.oi_classifier import OIInterpretation
from paper_trading.core.bar_source import Bar, BarKey, BarStore
from paper_trading.core.interpretation_store import InterpretationStore
from paper_trading.core.ledger_store import (
    Holding,
    LedgerStore,
    Position,
    PositionStatus,
    StrategyResult,
    StrategyResultStore,
    utc_now,
)
from paper_trading.core.order_store import Order, OrderStatus, OrderStore
from paper_trading.core.strategy_store import StrategyRecord, StrategyStatus, StrategyStore


# ─── 봉 저장소 ──────────────────────────────────────────────────────────────

class InMemoryBarStore(BarStore):
    """(종목, 타임프레임)별 epoch → Bar 딕셔너리.

    사용법:
        store = InMemoryBarStore()
        store.upsert_bars(bars)
        store.fetch_bars("NIFTY", "1m")
    """

    def __init__(self):
        self._series: dict[tuple[str, str], dict[int, Bar]] = {}
        self._lock = threading.Lock()

    def upsert_bars(self, bars: list[Bar]) -> int:
        with self._lock:
            for bar in bars:
                self._series.setdefault((bar.instrument, bar.timeframe), {})[bar.epoch_time] = bar
        return len(bars)

    def _sorted(self, instrument: str, timeframe: str) -> list[Bar]:
        series = self._series.get((instrument, timeframe), {})
        return [series[t] for t in sorted(series)]

    def fetch_bars(
        self,
        instrument: str,
        timeframe: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[Bar]:
        with self._lock:
            bars = self._sorted(instrument, timeframe)
        if start is not None:
            bars = [b for b in bars if b.epoch_time >= start]
        if end is not None:
            bars = [b for b in bars if b.epoch_time <= end]
        if limit is not None:
            bars = bars[:limit]
        return bars

    def fetch_previous_bar(
        self,
        instrument: str,
        timeframe: str,
        before_epoch: int,
    ) -> Optional[Bar]:
        with self._lock:
            bars = self._sorted(instrument, timeframe)
        idx = bisect_left([b.epoch_time for b in bars], before_epoch)
        return bars[idx - 1] if idx > 0 else None

    def get_latest_bar(self, instrument: str, timeframe: str) -> Optional[Bar]:
        with self._lock:
            bars = self._sorted(instrument, timeframe)
        return bars[-1] if bars else None

    def count_bars(self, instrument: str, timeframe: Optional[str] = None) -> int:
        with self._lock:
            return sum(
                len(series) for (inst, tf), series in self._series.items()
                if inst == instrument and (timeframe is None or tf == timeframe)
            )

    def get_instruments(self) -> list[str]:
        return sorted({instrument for instrument, series in self._series.items() if series})

    def get_timeframes(self, instrument: Optional[str] = None) -> list[str]:
        return sorted({
            tf for (inst, tf), series in self._series.items()
            if series and (instrument is None or inst == instrument)
        })

    def delete_bars(self, instrument: str, timeframe: Optional[str] = None) -> int:
        with self._lock:
            targets = [
                key for key in self._series
                if key[0] == instrument and (timeframe is None or key[1] == timeframe)
            ]
            return sum(len(self._series.pop(key)) for key in targets)


class InMemoryInterpretationStore(InterpretationStore):

    def __init__(self):
        self._data: dict[BarKey, OIInterpretation] = {}
        self.batch_calls = 0  # set_interpretations 호출 횟수 (배치 크기 확인용)

    def set_interpretations(self, updates: list[tuple[BarKey, OIInterpretation]]) -> int:
        self.batch_calls += 1
        for key, interpretation in updates:
            self._data[BarKey(*key)] = interpretation
        return len(updates)

    def get_interpretation(self, key: BarKey) -> Optional[OIInterpretation]:
        return self._data.get(BarKey(*key))

    def clear_interpretations(self, keys: list[BarKey]) -> int:
        removed = 0
        for key in keys:
            if self._data.pop(BarKey(*key), None) is not None:
                removed += 1
        return removed

    def all(self) -> dict[BarKey, OIInterpretation]:
        return dict(self._data)


# ─── 원장 저장소 ────────────────────────────────────────────────────────────

class InMemoryLedgerStore(LedgerStore):
    """dict 기반 Holding/Position 저장소."""

    def __init__(self):
        self._holdings: dict[str, Holding] = {}    # instrument → Holding
        self._positions: dict[str, Position] = {}  # id → Position
        self._lock = threading.Lock()

    def get_holding(self, instrument: str) -> Optional[Holding]:
        holding = self._holdings.get(instrument)
        return replace(holding) if holding else None

    def list_holdings(self) -> list[Holding]:
        return [replace(self._holdings[k]) for k in sorted(self._holdings)]

    def upsert_holding(
        self,
        instrument: str,
        quantity: float,
        average_price: float,
        realized_pnl_delta: float,
        unrealized_pnl: float,
        total_value: float,
    ) -> Holding:
        with self._lock:
            stored = self._holdings.get(instrument)
            realized = (stored.realized_pnl if stored else 0.0) + realized_pnl_delta
            holding = Holding(
                instrument=instrument,
                quantity=quantity,
                average_price=average_price,
                realized_pnl=realized,
                unrealized_pnl=unrealized_pnl,
                total_value=total_value,
                updated_at=utc_now(),
            )
            self._holdings[instrument] = holding
        return replace(holding)

    def update_holding_mark(
        self,
        instrument: str,
        unrealized_pnl: float,
        total_value: float,
    ) -> Optional[Holding]:
        with self._lock:
            stored = self._holdings.get(instrument)
            if stored is None:
                return None
            holding = replace(
                stored,
                unrealized_pnl=unrealized_pnl,
                total_value=total_value,
                updated_at=utc_now(),
            )
            self._holdings[instrument] = holding
        return replace(holding)

    def insert_position(self, position: Position) -> Position:
        with self._lock:
            if position.id in self._positions:
                raise ValueError(f"중복 포지션 id: {position.id}")
            self._positions[position.id] = replace(position)
        return position

    def get_position(self, position_id: str) -> Optional[Position]:
        position = self._positions.get(position_id)
        return replace(position) if position else None

    def update_position(self, position: Position) -> Position:
        with self._lock:
            self._positions[position.id] = replace(position)
        return position

    def delete_position(self, position_id: str) -> bool:
        with self._lock:
            return self._positions.pop(position_id, None) is not None

    def list_positions(
        self,
        instrument: Optional[str] = None,
        status: Optional[PositionStatus] = None,
        strategy_id: Optional[str] = None,
    ) -> list[Position]:
        result = [
            replace(p) for p in self._positions.values()
            if (instrument is None or p.instrument == instrument)
            and (status is None or p.status is status)
            and (strategy_id is None or p.strategy_id == strategy_id)
        ]
        # dict 삽입 순서 유지 + entry_time 안정 정렬
        result.sort(key=lambda p: p.entry_time)
        return result


class InMemoryStrategyResultStore(StrategyResultStore):

    def __init__(self):
        self._results: list[StrategyResult] = []

    def save_result(self, result: StrategyResult) -> StrategyResult:
        self._results.append(result)
        return result

    def list_results(self, strategy_id: Optional[str] = None) -> list[StrategyResult]:
        return [r for r in self._results if strategy_id is None or r.strategy_id == strategy_id]


# ─── 주문 / 전략 레코드 ─────────────────────────────────────────────────────

class InMemoryOrderStore(OrderStore):

    def __init__(self):
        self._orders: dict[str, Order] = {}
        self._lock = threading.Lock()

    def insert_order(self, order: Order) -> Order:
        with self._lock:
            if order.id in self._orders:
                raise ValueError(f"중복 주문 id: {order.id}")
            self._orders[order.id] = replace(order)
        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        return replace(order) if order else None

    def update_order(self, order: Order) -> Order:
        with self._lock:
            self._orders[order.id] = replace(order)
        return order

    def _matching(self, instrument: Optional[str], status: Optional[OrderStatus]) -> list[Order]:
        return [
            o for o in self._orders.values()
            if (instrument is None or o.instrument == instrument)
            and (status is None or o.status is status)
        ]

    def list_orders(
        self,
        instrument: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Order]:
        orders = sorted(self._matching(instrument, status), key=lambda o: o.order_time, reverse=True)
        return [replace(o) for o in orders[offset:offset + limit]]

    def count_orders(
        self,
        instrument: Optional[str] = None,
        status: Optional[OrderStatus] = None,
    ) -> int:
        return len(self._matching(instrument, status))


class InMemoryStrategyStore(StrategyStore):

    def __init__(self):
        self._records: dict[str, StrategyRecord] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _copy(record: StrategyRecord) -> StrategyRecord:
        return replace(record, params=dict(record.params), instruments=list(record.instruments))

    def insert_strategy(self, record: StrategyRecord) -> StrategyRecord:
        with self._lock:
            if any(r.name == record.name for r in self._records.values()):
                raise ValueError(f"중복 전략 이름: {record.name}")
            self._records[record.id] = self._copy(record)
        return record

    def get_strategy(self, strategy_id: str) -> Optional[StrategyRecord]:
        record = self._records.get(strategy_id)
        return self._copy(record) if record else None

    def get_strategy_by_name(self, name: str) -> Optional[StrategyRecord]:
        for record in self._records.values():
            if record.name == name:
                return self._copy(record)
        return None

    def update_strategy(self, record: StrategyRecord) -> StrategyRecord:
        with self._lock:
            self._records[record.id] = self._copy(record)
        return record

    def delete_strategy(self, strategy_id: str) -> bool:
        with self._lock:
            return self._records.pop(strategy_id, None) is not None

    def list_strategies(self, status: Optional[StrategyStatus] = None) -> list[StrategyRecord]:
        records = [r for r in self._records.values() if status is None or r.status is status]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return [self._copy(r) for r in records]

"""
ClickHouse 기반 저장소 구현.

[ 역할 ]
    core/의 저장소 추상 클래스를 ClickHouse 테이블로 구현.
    - ClickHouseBarStore:            BarStore (bars 테이블)
    - ClickHouseInterpretationStore: InterpretationStore (bar_oi_interpretations 테이블)
    - ClickHouseLedgerStore:         LedgerStore (holdings, positions 테이블)
    - ClickHouseStrategyResultStore: StrategyResultStore (strategy_results 테이블)
    - ClickHouseOrderStore:          OrderStore (orders 테이블)
    - ClickHouseStrategyStore:       StrategyStore (strategies 테이블)

[ 갱신 방식 ]
    ReplacingMergeTree라 UPDATE 대신 새 행을 INSERT하고 FINAL로 최신 행만 읽는다.
    holdings/positions/orders/strategies는 version 컬럼을 1씩 올려 마지막 쓰기가 이기도록 한다.
    Holding 실현손익은 저장된 값을 읽어 delta를 더한 값으로 쓴다
    (같은 종목 동시 쓰기는 data/ledger.py의 종목별 락이 직렬화).

[ 의존성 ]
    - ingestion/clickhouse_schema.py (연결 및 테이블 이름)

[ 호출하는 곳 ]
    - run_backtest.py (--source clickhouse 옵션 사용 시)
    - scripts/enrich_oi.py
"""

import json
import logging
from datetime import datetime, timezone
from typing import Optional

import pandas as pd
from clickhouse_connect.driver import Client

from paper_trading.analysis.oi_classifier import OIInterpretation
from paper_trading.core.bar_source import Bar, BarKey, BarStore
from paper_trading.core.interpretation_store import InterpretationStore
from paper_trading.core.ledger_store import (
    Holding,
    LedgerStore,
    Position,
    PositionStatus,
    Side,
    StrategyResult,
    StrategyResultStore,
    utc_now,
)
from paper_trading.core.order_store import Order, OrderStatus, OrderStore
from paper_trading.core.strategy_store import StrategyRecord, StrategyStatus, StrategyStore
from paper_trading.ingestion.clickhouse_schema import (
    BARS_TABLE,
    HOLDINGS_TABLE,
    INTERPRETATIONS_TABLE,
    ORDERS_TABLE,
    POSITIONS_TABLE,
    STRATEGIES_TABLE,
    STRATEGY_RESULTS_TABLE,
)

logger = logging.getLogger("paper_trading.storage")

BAR_COLUMNS = ["epoch_time", "open", "high", "low", "close", "volume", "open_interest"]
HOLDING_COLUMNS = [
    "instrument", "quantity", "average_price", "realized_pnl",
    "unrealized_pnl", "total_value", "updated_at", "version",
]
POSITION_COLUMNS = [
    "id", "instrument", "side", "status", "entry_price", "quantity", "entry_time",
    "exit_price", "exit_time", "pnl", "unrealized_pnl", "strategy_id", "version",
]
RESULT_COLUMNS = [
    "id", "strategy_id", "instrument", "total_trades", "winning_trades", "total_pnl",
    "max_drawdown", "win_rate", "sharpe_ratio", "start_time", "end_time", "created_at",
]
ORDER_COLUMNS = [
    "id", "instrument", "side", "status", "quantity", "price", "order_time",
    "filled_quantity", "filled_price", "filled_time", "strategy_id", "updated_at", "version",
]
STRATEGY_COLUMNS = [
    "id", "name", "description", "params", "instruments", "status", "created_at", "updated_at", "version",
]


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """드라이버가 naive datetime을 돌려주는 경우 UTC로 간주."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class ClickHouseBarStore(BarStore):
    """bars 테이블 기반 봉 저장소.

    사용 예:
        store = ClickHouseBarStore(get_client(host="localhost"))
        bars = store.fetch_bars("NIFTY", "1m", start=1704067200)
    """

    def __init__(self, client: Client):
        self.client = client

    def fetch_bars(
        self,
        instrument: str,
        timeframe: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[Bar]:
        df = self.fetch_frame(instrument, timeframe, start, end, limit)
        return [
            Bar.from_row(instrument, timeframe, row)
            for row in df[BAR_COLUMNS].itertuples(index=False, name=None)
        ]

    def fetch_frame(
        self,
        instrument: str,
        timeframe: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> pd.DataFrame:
        """봉 데이터를 DataFrame으로 조회 (epoch_time 오름차순).

        Returns:
            DataFrame with columns: [epoch_time, open, high, low, close, volume, open_interest]
        """
        conditions = ["instrument = %(instrument)s", "timeframe = %(timeframe)s"]
        parameters: dict = {"instrument": instrument, "timeframe": timeframe}
        if start is not None:
            conditions.append("epoch_time >= %(start)s")
            parameters["start"] = int(start)
        if end is not None:
            conditions.append("epoch_time <= %(end)s")
            parameters["end"] = int(end)

        query = f"""
            SELECT {", ".join(BAR_COLUMNS)}
            FROM {BARS_TABLE} FINAL
            WHERE {" AND ".join(conditions)}
            ORDER BY epoch_time ASC
        """
        if limit is not None:
            query += f" LIMIT {int(limit)}"

        result = self.client.query(query, parameters=parameters)
        return pd.DataFrame(result.result_rows, columns=BAR_COLUMNS)

    def fetch_previous_bar(self, instrument: str, timeframe: str, before_epoch: int) -> Optional[Bar]:
        query = f"""
            SELECT {", ".join(BAR_COLUMNS)}
            FROM {BARS_TABLE} FINAL
            WHERE instrument = %(instrument)s
              AND timeframe = %(timeframe)s
              AND epoch_time < %(before)s
            ORDER BY epoch_time DESC
            LIMIT 1
        """
        result = self.client.query(
            query,
            parameters={"instrument": instrument, "timeframe": timeframe, "before": int(before_epoch)},
        )
        if not result.result_rows:
            return None
        return Bar.from_row(instrument, timeframe, result.result_rows[0])

    def upsert_bars(self, bars: list[Bar]) -> int:
        if not bars:
            return 0
        rows = [
            [b.instrument, b.timeframe, b.epoch_time, b.open, b.high, b.low, b.close, b.volume, b.open_interest]
            for b in bars
        ]
        try:
            self.client.insert(
                BARS_TABLE,
                rows,
                column_names=["instrument", "timeframe", *BAR_COLUMNS],
            )
        except Exception as e:
            logger.error(f"봉 저장 실패 ({len(rows)}건): {e}")
            raise
        return len(rows)

    def get_latest_bar(self, instrument: str, timeframe: str) -> Optional[Bar]:
        query = f"""
            SELECT {", ".join(BAR_COLUMNS)}
            FROM {BARS_TABLE} FINAL
            WHERE instrument = %(instrument)s AND timeframe = %(timeframe)s
            ORDER BY epoch_time DESC
            LIMIT 1
        """
        result = self.client.query(query, parameters={"instrument": instrument, "timeframe": timeframe})
        if not result.result_rows:
            return None
        return Bar.from_row(instrument, timeframe, result.result_rows[0])

    @staticmethod
    def _series_filter(instrument: str, timeframe: Optional[str]) -> tuple[str, dict]:
        conditions = ["instrument = %(instrument)s"]
        parameters = {"instrument": instrument}
        if timeframe is not None:
            conditions.append("timeframe = %(timeframe)s")
            parameters["timeframe"] = timeframe
        return " AND ".join(conditions), parameters

    def count_bars(self, instrument: str, timeframe: Optional[str] = None) -> int:
        where, parameters = self._series_filter(instrument, timeframe)
        result = self.client.query(f"SELECT count() FROM {BARS_TABLE} FINAL WHERE {where}", parameters=parameters)
        return int(result.result_rows[0][0]) if result.result_rows else 0

    def get_instruments(self) -> list[str]:
        """저장된 종목 목록 (알파벳 순)."""
        result = self.client.query(f"SELECT DISTINCT instrument FROM {BARS_TABLE} ORDER BY instrument")
        return [row[0] for row in result.result_rows]

    def get_timeframes(self, instrument: Optional[str] = None) -> list[str]:
        if instrument is None:
            result = self.client.query(f"SELECT DISTINCT timeframe FROM {BARS_TABLE} ORDER BY timeframe")
        else:
            result = self.client.query(
                f"SELECT DISTINCT timeframe FROM {BARS_TABLE} WHERE instrument = %(instrument)s ORDER BY timeframe",
                parameters={"instrument": instrument},
            )
        return [row[0] for row in result.result_rows]

    def delete_bars(self, instrument: str, timeframe: Optional[str] = None) -> int:
        """삭제 전 개수를 세고 lightweight DELETE 실행."""
        count = self.count_bars(instrument, timeframe)
        if count == 0:
            return 0
        where, parameters = self._series_filter(instrument, timeframe)
        self.client.command(f"DELETE FROM {BARS_TABLE} WHERE {where}", parameters=parameters)
        logger.info(f"봉 삭제: {instrument}/{timeframe or '*'} {count:,}건")
        return count


class ClickHouseInterpretationStore(InterpretationStore):
    """bar_oi_interpretations 테이블 기반 OI 해석 캐시."""

    def __init__(self, client: Client):
        self.client = client

    def set_interpretations(self, updates: list[tuple[BarKey, OIInterpretation]]) -> int:
        if not updates:
            return 0
        now = utc_now()
        rows = [
            [key.instrument, key.timeframe, key.epoch_time, interpretation.value, now]
            for key, interpretation in updates
        ]
        try:
            self.client.insert(
                INTERPRETATIONS_TABLE,
                rows,
                column_names=["instrument", "timeframe", "epoch_time", "interpretation", "updated_at"],
            )
        except Exception as e:
            logger.error(f"OI 해석 저장 실패 ({len(rows)}건): {e}")
            raise
        return len(rows)

    def get_interpretation(self, key: BarKey) -> Optional[OIInterpretation]:
        query = f"""
            SELECT interpretation
            FROM {INTERPRETATIONS_TABLE} FINAL
            WHERE instrument = %(instrument)s
              AND timeframe = %(timeframe)s
              AND epoch_time = %(epoch_time)s
        """
        result = self.client.query(query, parameters=key._asdict())
        if not result.result_rows:
            return None
        return OIInterpretation(result.result_rows[0][0])

    def clear_interpretations(self, keys: list[BarKey]) -> int:
        """시리즈별로 묶어 DELETE 1회씩 실행."""
        by_series: dict[tuple[str, str], list[int]] = {}
        for key in keys:
            key = BarKey(*key)
            by_series.setdefault((key.instrument, key.timeframe), []).append(key.epoch_time)

        for (instrument, timeframe), epochs in by_series.items():
            self.client.command(
                f"""
                DELETE FROM {INTERPRETATIONS_TABLE}
                WHERE instrument = %(instrument)s
                  AND timeframe = %(timeframe)s
                  AND epoch_time IN %(epochs)s
                """,
                parameters={"instrument": instrument, "timeframe": timeframe, "epochs": epochs},
            )
        return len(keys)

    def summary(self, instrument: str, timeframe: str) -> pd.DataFrame:
        """해석별 봉 개수. columns: [interpretation, count]"""
        query = f"""
            SELECT interpretation, count() AS count
            FROM {INTERPRETATIONS_TABLE} FINAL
            WHERE instrument = %(instrument)s AND timeframe = %(timeframe)s
            GROUP BY interpretation
            ORDER BY count DESC
        """
        result = self.client.query(query, parameters={"instrument": instrument, "timeframe": timeframe})
        return pd.DataFrame(result.result_rows, columns=["interpretation", "count"])


class ClickHouseLedgerStore(LedgerStore):
    """holdings/positions 테이블 기반 원장 저장소."""

    def __init__(self, client: Client):
        self.client = client

    # ─── Holding ────────────────────────────────────────────────────────

    def _holding_row(self, instrument: str) -> Optional[tuple]:
        query = f"""
            SELECT {", ".join(HOLDING_COLUMNS)}
            FROM {HOLDINGS_TABLE} FINAL
            WHERE instrument = %(instrument)s
        """
        result = self.client.query(query, parameters={"instrument": instrument})
        return result.result_rows[0] if result.result_rows else None

    @staticmethod
    def _to_holding(row) -> Holding:
        instrument, quantity, avg, realized, unrealized, total, updated_at, _ = row
        return Holding(
            instrument=instrument,
            quantity=float(quantity),
            average_price=float(avg),
            realized_pnl=float(realized),
            unrealized_pnl=float(unrealized),
            total_value=float(total),
            updated_at=_utc(updated_at),
        )

    def _write_holding(self, holding: Holding, version: int) -> None:
        try:
            self.client.insert(
                HOLDINGS_TABLE,
                [[
                    holding.instrument, holding.quantity, holding.average_price, holding.realized_pnl,
                    holding.unrealized_pnl, holding.total_value, holding.updated_at, version,
                ]],
                column_names=HOLDING_COLUMNS,
            )
        except Exception as e:
            logger.error(f"Holding 저장 실패 ({holding.instrument}): {e}")
            raise

    def get_holding(self, instrument: str) -> Optional[Holding]:
        row = self._holding_row(instrument)
        return self._to_holding(row) if row else None

    def list_holdings(self) -> list[Holding]:
        query = f"SELECT {', '.join(HOLDING_COLUMNS)} FROM {HOLDINGS_TABLE} FINAL ORDER BY instrument"
        return [self._to_holding(row) for row in self.client.query(query).result_rows]

    def upsert_holding(
        self,
        instrument: str,
        quantity: float,
        average_price: float,
        realized_pnl_delta: float,
        unrealized_pnl: float,
        total_value: float,
    ) -> Holding:
        row = self._holding_row(instrument)
        stored_realized = float(row[3]) if row else 0.0
        version = int(row[7]) + 1 if row else 1

        holding = Holding(
            instrument=instrument,
            quantity=quantity,
            average_price=average_price,
            realized_pnl=stored_realized + realized_pnl_delta,
            unrealized_pnl=unrealized_pnl,
            total_value=total_value,
            updated_at=utc_now(),
        )
        self._write_holding(holding, version)
        return holding

    def update_holding_mark(
        self,
        instrument: str,
        unrealized_pnl: float,
        total_value: float,
    ) -> Optional[Holding]:
        row = self._holding_row(instrument)
        if row is None:
            return None
        stored = self._to_holding(row)
        stored.unrealized_pnl = unrealized_pnl
        stored.total_value = total_value
        stored.updated_at = utc_now()
        self._write_holding(stored, int(row[7]) + 1)
        return stored

    # ─── Position ───────────────────────────────────────────────────────

    @staticmethod
    def _to_position(row) -> Position:
        (pid, instrument, side, status, entry_price, quantity, entry_time,
         exit_price, exit_time, pnl, unrealized, strategy_id, _) = row
        return Position(
            id=pid,
            instrument=instrument,
            side=Side(side),
            status=PositionStatus(status),
            entry_price=float(entry_price),
            quantity=float(quantity),
            entry_time=_utc(entry_time),
            exit_price=float(exit_price) if exit_price is not None else None,
            exit_time=_utc(exit_time),
            pnl=float(pnl) if pnl is not None else None,
            unrealized_pnl=float(unrealized),
            strategy_id=strategy_id,
        )

    def _position_version(self, position_id: str) -> Optional[int]:
        query = f"SELECT version FROM {POSITIONS_TABLE} FINAL WHERE id = %(id)s"
        result = self.client.query(query, parameters={"id": position_id})
        return int(result.result_rows[0][0]) if result.result_rows else None

    def _write_position(self, position: Position, version: int) -> None:
        p = position
        try:
            self.client.insert(
                POSITIONS_TABLE,
                [[
                    p.id, p.instrument, p.side.value, p.status.value, p.entry_price, p.quantity,
                    p.entry_time, p.exit_price, p.exit_time, p.pnl, p.unrealized_pnl,
                    p.strategy_id, version,
                ]],
                column_names=POSITION_COLUMNS,
            )
        except Exception as e:
            logger.error(f"포지션 저장 실패 ({p.id}): {e}")
            raise

    def insert_position(self, position: Position) -> Position:
        if self._position_version(position.id) is not None:
            raise ValueError(f"중복 포지션 id: {position.id}")
        self._write_position(position, 1)
        return position

    def get_position(self, position_id: str) -> Optional[Position]:
        query = f"SELECT {', '.join(POSITION_COLUMNS)} FROM {POSITIONS_TABLE} FINAL WHERE id = %(id)s"
        result = self.client.query(query, parameters={"id": position_id})
        return self._to_position(result.result_rows[0]) if result.result_rows else None

    def update_position(self, position: Position) -> Position:
        version = self._position_version(position.id) or 0
        self._write_position(position, version + 1)
        return position

    def delete_position(self, position_id: str) -> bool:
        if self._position_version(position_id) is None:
            return False
        self.client.command(
            f"DELETE FROM {POSITIONS_TABLE} WHERE id = %(id)s",
            parameters={"id": position_id},
        )
        return True

    def list_positions(
        self,
        instrument: Optional[str] = None,
        status: Optional[PositionStatus] = None,
        strategy_id: Optional[str] = None,
    ) -> list[Position]:
        conditions = []
        parameters = {}
        if instrument is not None:
            conditions.append("instrument = %(instrument)s")
            parameters["instrument"] = instrument
        if status is not None:
            conditions.append("status = %(status)s")
            parameters["status"] = status.value
        if strategy_id is not None:
            conditions.append("strategy_id = %(strategy_id)s")
            parameters["strategy_id"] = strategy_id

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"""
            SELECT {", ".join(POSITION_COLUMNS)}
            FROM {POSITIONS_TABLE} FINAL
            {where}
            ORDER BY entry_time ASC
        """
        result = self.client.query(query, parameters=parameters)
        return [self._to_position(row) for row in result.result_rows]


class ClickHouseStrategyResultStore(StrategyResultStore):
    """strategy_results 테이블 기반 백테스트 결과 저장소."""

    def __init__(self, client: Client):
        self.client = client

    def save_result(self, result: StrategyResult) -> StrategyResult:
        r = result
        try:
            self.client.insert(
                STRATEGY_RESULTS_TABLE,
                [[
                    r.id, r.strategy_id, r.instrument, r.total_trades, r.winning_trades, r.total_pnl,
                    r.max_drawdown, r.win_rate, r.sharpe_ratio, r.start_time, r.end_time, r.created_at,
                ]],
                column_names=RESULT_COLUMNS,
            )
        except Exception as e:
            logger.error(f"백테스트 결과 저장 실패 ({r.strategy_id}/{r.instrument}): {e}")
            raise
        return result

    def list_results(self, strategy_id: Optional[str] = None) -> list[StrategyResult]:
        where = "WHERE strategy_id = %(strategy_id)s" if strategy_id is not None else ""
        query = f"""
            SELECT {", ".join(RESULT_COLUMNS)}
            FROM {STRATEGY_RESULTS_TABLE} FINAL
            {where}
            ORDER BY created_at DESC
        """
        parameters = {"strategy_id": strategy_id} if strategy_id is not None else {}
        rows = self.client.query(query, parameters=parameters).result_rows
        return [
            StrategyResult(
                id=row[0],
                strategy_id=row[1],
                instrument=row[2],
                total_trades=int(row[3]),
                winning_trades=int(row[4]),
                total_pnl=float(row[5]),
                max_drawdown=float(row[6]),
                win_rate=float(row[7]),
                sharpe_ratio=float(row[8]),
                start_time=_utc(row[9]),
                end_time=_utc(row[10]),
                created_at=_utc(row[11]),
            )
            for row in rows
        ]


class ClickHouseOrderStore(OrderStore):
    """orders 테이블 기반 주문 저장소. 상태 변경은 version을 올린 새 행."""

    def __init__(self, client: Client):
        self.client = client

    @staticmethod
    def _to_order(row) -> Order:
        (oid, instrument, side, status, quantity, price, order_time,
         filled_quantity, filled_price, filled_time, strategy_id, updated_at, _) = row
        return Order(
            id=oid,
            instrument=instrument,
            side=Side(side),
            status=OrderStatus(status),
            quantity=float(quantity),
            price=float(price),
            order_time=_utc(order_time),
            filled_quantity=float(filled_quantity),
            filled_price=float(filled_price) if filled_price is not None else None,
            filled_time=_utc(filled_time),
            strategy_id=strategy_id,
            updated_at=_utc(updated_at),
        )

    def _version(self, order_id: str) -> Optional[int]:
        query = f"SELECT version FROM {ORDERS_TABLE} FINAL WHERE id = %(id)s"
        result = self.client.query(query, parameters={"id": order_id})
        return int(result.result_rows[0][0]) if result.result_rows else None

    def _write(self, order: Order, version: int) -> None:
        o = order
        try:
            self.client.insert(
                ORDERS_TABLE,
                [[
                    o.id, o.instrument, o.side.value, o.status.value, o.quantity, o.price, o.order_time,
                    o.filled_quantity, o.filled_price, o.filled_time, o.strategy_id, o.updated_at, version,
                ]],
                column_names=ORDER_COLUMNS,
            )
        except Exception as e:
            logger.error(f"주문 저장 실패 ({o.id}): {e}")
            raise

    def insert_order(self, order: Order) -> Order:
        if self._version(order.id) is not None:
            raise ValueError(f"중복 주문 id: {order.id}")
        self._write(order, 1)
        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        query = f"SELECT {', '.join(ORDER_COLUMNS)} FROM {ORDERS_TABLE} FINAL WHERE id = %(id)s"
        result = self.client.query(query, parameters={"id": order_id})
        return self._to_order(result.result_rows[0]) if result.result_rows else None

    def update_order(self, order: Order) -> Order:
        version = self._version(order.id) or 0
        self._write(order, version + 1)
        return order

    @staticmethod
    def _filter(instrument: Optional[str], status: Optional[OrderStatus]) -> tuple[str, dict]:
        conditions = []
        parameters = {}
        if instrument is not None:
            conditions.append("instrument = %(instrument)s")
            parameters["instrument"] = instrument
        if status is not None:
            conditions.append("status = %(status)s")
            parameters["status"] = status.value
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return where, parameters

    def list_orders(
        self,
        instrument: Optional[str] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Order]:
        where, parameters = self._filter(instrument, status)
        query = f"""
            SELECT {", ".join(ORDER_COLUMNS)}
            FROM {ORDERS_TABLE} FINAL
            {where}
            ORDER BY order_time DESC
            LIMIT {int(limit)} OFFSET {int(offset)}
        """
        result = self.client.query(query, parameters=parameters)
        return [self._to_order(row) for row in result.result_rows]

    def count_orders(
        self,
        instrument: Optional[str] = None,
        status: Optional[OrderStatus] = None,
    ) -> int:
        where, parameters = self._filter(instrument, status)
        result = self.client.query(f"SELECT count() FROM {ORDERS_TABLE} FINAL {where}", parameters=parameters)
        return int(result.result_rows[0][0]) if result.result_rows else 0


class ClickHouseStrategyStore(StrategyStore):
    """strategies 테이블 기반 전략 레코드 저장소. params는 JSON 문자열로 저장."""

    def __init__(self, client: Client):
        self.client = client

    @staticmethod
    def _to_record(row) -> StrategyRecord:
        sid, name, description, params, instruments, status, created_at, updated_at, _ = row
        return StrategyRecord(
            id=sid,
            name=name,
            description=description,
            params=json.loads(params) if params else {},
            instruments=list(instruments),
            status=StrategyStatus(status),
            created_at=_utc(created_at),
            updated_at=_utc(updated_at),
        )

    def _select(self, where: str, parameters: dict) -> list[StrategyRecord]:
        query = f"""
            SELECT {", ".join(STRATEGY_COLUMNS)}
            FROM {STRATEGIES_TABLE} FINAL
            {where}
            ORDER BY created_at DESC
        """
        return [self._to_record(row) for row in self.client.query(query, parameters=parameters).result_rows]

    def _version(self, strategy_id: str) -> Optional[int]:
        query = f"SELECT version FROM {STRATEGIES_TABLE} FINAL WHERE id = %(id)s"
        result = self.client.query(query, parameters={"id": strategy_id})
        return int(result.result_rows[0][0]) if result.result_rows else None

    def _write(self, record: StrategyRecord, version: int) -> None:
        r = record
        try:
            self.client.insert(
                STRATEGIES_TABLE,
                [[
                    r.id, r.name, r.description, json.dumps(r.params, sort_keys=True), list(r.instruments),
                    r.status.value, r.created_at, r.updated_at, version,
                ]],
                column_names=STRATEGY_COLUMNS,
            )
        except Exception as e:
            logger.error(f"전략 저장 실패 ({r.name}): {e}")
            raise

    def insert_strategy(self, record: StrategyRecord) -> StrategyRecord:
        if self.get_strategy_by_name(record.name) is not None:
            raise ValueError(f"중복 전략 이름: {record.name}")
        self._write(record, 1)
        return record

    def get_strategy(self, strategy_id: str) -> Optional[StrategyRecord]:
        records = self._select("WHERE id = %(id)s", {"id": strategy_id})
        return records[0] if records else None

    def get_strategy_by_name(self, name: str) -> Optional[StrategyRecord]:
        records = self._select("WHERE name = %(name)s", {"name": name})
        return records[0] if records else None

    def update_strategy(self, record: StrategyRecord) -> StrategyRecord:
        version = self._version(record.id) or 0
        self._write(record, version + 1)
        return record

    def delete_strategy(self, strategy_id: str) -> bool:
        if self._version(strategy_id) is None:
            return False
        self.client.command(
            f"DELETE FROM {STRATEGIES_TABLE} WHERE id = %(id)s",
            parameters={"id": strategy_id},
        )
        return True

    def list_strategies(self, status: Optional[StrategyStatus] = None) -> list[StrategyRecord]:
        if status is None:
            return self._select("", {})
        return self._select("WHERE status = %(status)s", {"status": status.value})

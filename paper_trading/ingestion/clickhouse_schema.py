"""
ClickHouse 데이터베이스 스키마 정의 및 연결 관리.

[ 테이블 ]
    bars                    봉 데이터 (OHLCV + OI). (instrument, timeframe, epoch_time) 기준 최신 행 유지
    bar_oi_interpretations  봉별 OI 해석 캐시. 재분석 시 덮어씀
    holdings                종목별 보유 현황. version이 가장 큰 행이 현재 상태
    positions               개별 포지션. version이 가장 큰 행이 현재 상태
    strategy_results        백테스트 결과
    orders                  모의매매 주문. version이 가장 큰 행이 현재 상태
    strategies              전략 레코드 (파라미터는 JSON 문자열). version이 가장 큰 행이 현재 상태

    모두 ReplacingMergeTree이며 조회는 FINAL로 한다.
"""
from typing import Optional

import clickhouse_connect
from clickhouse_connect.driver import Client

BARS_TABLE = "bars"
INTERPRETATIONS_TABLE = "bar_oi_interpretations"
HOLDINGS_TABLE = "holdings"
POSITIONS_TABLE = "positions"
STRATEGY_RESULTS_TABLE = "strategy_results"
ORDERS_TABLE = "orders"
STRATEGIES_TABLE = "strategies"

ALL_TABLES = (
    BARS_TABLE,
    INTERPRETATIONS_TABLE,
    HOLDINGS_TABLE,
    POSITIONS_TABLE,
    STRATEGY_RESULTS_TABLE,
    ORDERS_TABLE,
    STRATEGIES_TABLE,
)


def get_client(
    host: str = "localhost",
    port: int = 8123,
    database: str = "default",
    user: str = "default",
    password: str = "password",
) -> Client:
    """
    ClickHouse 클라이언트 연결 생성

    Args:
        host: ClickHouse 호스트
        port: HTTP 포트 (기본값: 8123)
        database: 데이터베이스 이름
        user: 사용자 이름
        password: 비밀번호

    Returns:
        ClickHouse 클라이언트 객체
    """
    return clickhouse_connect.get_client(
        host=host,
        port=port,
        database=database,
        username=user,
        password=password,
    )


CREATE_STATEMENTS = {
    BARS_TABLE: f"""
    CREATE TABLE IF NOT EXISTS {BARS_TABLE} (
        instrument String,
        timeframe LowCardinality(String),
        epoch_time Int64,
        open Float64,
        high Float64,
        low Float64,
        close Float64,
        volume Float64 DEFAULT 0,
        open_interest Float64 DEFAULT 0,
        ingestion_time DateTime DEFAULT now()
    )
    ENGINE = ReplacingMergeTree(ingestion_time)
    ORDER BY (instrument, timeframe, epoch_time)
    SETTINGS index_granularity = 8192
    """,
    INTERPRETATIONS_TABLE: f"""
    CREATE TABLE IF NOT EXISTS {INTERPRETATIONS_TABLE} (
        instrument String,
        timeframe LowCardinality(String),
        epoch_time Int64,
        interpretation LowCardinality(String),
        updated_at DateTime64(3, 'UTC') DEFAULT now64(3)
    )
    ENGINE = ReplacingMergeTree(updated_at)
    ORDER BY (instrument, timeframe, epoch_time)
    """,
    HOLDINGS_TABLE: f"""
    CREATE TABLE IF NOT EXISTS {HOLDINGS_TABLE} (
        instrument String,
        quantity Float64,
        average_price Float64,
        realized_pnl Float64,
        unrealized_pnl Float64,
        total_value Float64,
        updated_at DateTime64(3, 'UTC'),
        version UInt64
    )
    ENGINE = ReplacingMergeTree(version)
    ORDER BY instrument
    """,
    POSITIONS_TABLE: f"""
    CREATE TABLE IF NOT EXISTS {POSITIONS_TABLE} (
        id String,
        instrument String,
        side LowCardinality(String),
        status LowCardinality(String),
        entry_price Float64,
        quantity Float64,
        entry_time DateTime64(3, 'UTC'),
        exit_price Nullable(Float64),
        exit_time Nullable(DateTime64(3, 'UTC')),
        pnl Nullable(Float64),
        unrealized_pnl Float64,
        strategy_id Nullable(String),
        version UInt64
    )
    ENGINE = ReplacingMergeTree(version)
    ORDER BY id
    """,
    STRATEGY_RESULTS_TABLE: f"""
    CREATE TABLE IF NOT EXISTS {STRATEGY_RESULTS_TABLE} (
        id String,
        strategy_id String,
        instrument String,
        total_trades UInt32,
        winning_trades UInt32,
        total_pnl Float64,
        max_drawdown Float64,
        win_rate Float64,
        sharpe_ratio Float64,
        start_time DateTime64(3, 'UTC'),
        end_time DateTime64(3, 'UTC'),
        created_at DateTime64(3, 'UTC')
    )
    ENGINE = ReplacingMergeTree(created_at)
    ORDER BY (strategy_id, instrument, id)
    """,
    ORDERS_TABLE: f"""
    CREATE TABLE IF NOT EXISTS {ORDERS_TABLE} (
        id String,
        instrument String,
        side LowCardinality(String),
        status LowCardinality(String),
        quantity Float64,
        price Float64,
        order_time DateTime64(3, 'UTC'),
        filled_quantity Float64 DEFAULT 0,
        filled_price Nullable(Float64),
        filled_time Nullable(DateTime64(3, 'UTC')),
        strategy_id Nullable(String),
        updated_at DateTime64(3, 'UTC'),
        version UInt64
    )
    ENGINE = ReplacingMergeTree(version)
    ORDER BY id
    """,
    STRATEGIES_TABLE: f"""
    CREATE TABLE IF NOT EXISTS {STRATEGIES_TABLE} (
        id String,
        name String,
        description Nullable(String),
        params String,
        instruments Array(String),
        status LowCardinality(String),
        created_at DateTime64(3, 'UTC'),
        updated_at DateTime64(3, 'UTC'),
        version UInt64
    )
    ENGINE = ReplacingMergeTree(version)
    ORDER BY id
    """,
}


def initialize_schema(client: Client, tables: Optional[tuple[str, ...]] = None) -> None:
    """
    필요한 테이블 생성 (이미 존재하면 무시)

    Args:
        client: ClickHouse 클라이언트
        tables: 생성할 테이블 이름 (None이면 전체)
    """
    for table in tables or ALL_TABLES:
        client.command(CREATE_STATEMENTS[table])
    print("테이블 생성 완료 (또는 이미 존재)")


def verify_connection(client: Client) -> bool:
    """
    ClickHouse 연결 검증

    Args:
        client: ClickHouse 클라이언트

    Returns:
        연결 성공 시 True
    """
    try:
        result = client.command("SELECT 1")
        return result == 1
    except Exception as e:
        print(f"연결 실패: {e}")
        return False


def get_record_count(client: Client, table: str = BARS_TABLE, instrument: Optional[str] = None) -> int:
    """
    레코드 수 조회 (FINAL 기준)

    Args:
        client: ClickHouse 클라이언트
        table: 테이블 이름
        instrument: 특정 종목 (None이면 전체)

    Returns:
        레코드 수
    """
    if instrument:
        query = f"SELECT COUNT(*) FROM {table} FINAL WHERE instrument = %(instrument)s"
        result = client.query(query, parameters={"instrument": instrument})
    else:
        result = client.query(f"SELECT COUNT(*) FROM {table} FINAL")

    return result.result_rows[0][0] if result.result_rows else 0

#!/usr/bin/env python3
"""
ClickHouse 봉 데이터에 OI 해석을 일괄 기록하는 스크립트

[ 사용법 ]
    # config.yaml의 종목/타임프레임 전체 재분석
    python scripts/enrich_oi.py

    # 종목/타임프레임 지정
    python scripts/enrich_oi.py --instrument NIFTY --instrument BANKNIFTY --timeframe 5m

    # CSV 봉 데이터 적재 + 신규 봉 OI 해석 기록
    # (컬럼: epoch_time, open, high, low, close, volume, open_interest)
    python scripts/enrich_oi.py --instrument NIFTY --timeframe 1m --csv nifty_1m.csv

    # 저장된 시리즈 요약 / 삭제 (삭제 시 OI 해석도 함께 삭제)
    python scripts/enrich_oi.py --instrument NIFTY --timeframe 1m --stats
    python scripts/enrich_oi.py --instrument NIFTY --delete
"""
import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

# 프로젝트 루트를 sys.path에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from paper_trading.analysis.oi_enrichment import OIEnrichmentService
from paper_trading.core.bar_source import Bar
from paper_trading.core.errors import TradingError
from paper_trading.data.clickhouse_store import ClickHouseBarStore, ClickHouseInterpretationStore
from paper_trading.data.historical_data import HistoricalDataService
from paper_trading.ingestion.clickhouse_schema import get_client, initialize_schema, verify_connection
from paper_trading.utils.config import Config
from paper_trading.utils.logger import setup_logger

logger = logging.getLogger("paper_trading.oi")

CSV_COLUMNS = ["epoch_time", "open", "high", "low", "close", "volume", "open_interest"]


def load_csv_bars(path: Path, instrument: str, timeframe: str) -> list[Bar]:
    """CSV 파일에서 봉 목록 로드. volume/open_interest 컬럼이 없으면 0."""
    df = pd.read_csv(path)
    missing = [c for c in CSV_COLUMNS[:5] if c not in df.columns]
    if missing:
        raise ValueError(f"CSV에 필수 컬럼 없음: {missing}")
    for column in ("volume", "open_interest"):
        if column not in df.columns:
            df[column] = 0.0

    return [
        Bar.from_row(instrument, timeframe, row)
        for row in df[CSV_COLUMNS].itertuples(index=False, name=None)
    ]


def main():
    parser = argparse.ArgumentParser(description="봉 데이터 OI 해석 일괄 분석")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--instrument", action="append", default=[], help="종목 코드 (여러 번 지정 가능)")
    parser.add_argument("--timeframe", type=str, default=None, help="타임프레임 (기본: config.backtest.timeframe)")
    parser.add_argument("--batch-size", type=int, default=None, help="저장 배치 크기 (기본: config.oi.batch_size)")
    parser.add_argument("--csv", type=Path, default=None, help="적재할 봉 CSV 파일 (종목 1개만 지정)")
    parser.add_argument("--stats", action="store_true", help="저장된 시리즈 요약만 출력")
    parser.add_argument("--delete", action="store_true", help="종목의 봉과 OI 해석 삭제 (--timeframe 지정 시 해당 타임프레임만)")
    args = parser.parse_args()

    config_path = Path(args.config)
    config = Config.from_yaml(config_path) if config_path.exists() else Config()
    setup_logger(level=config.log_level, log_dir=config.log_dir)

    instruments = args.instrument or config.strategy.instruments
    timeframe = args.timeframe or config.backtest.timeframe
    batch_size = args.batch_size or config.oi.batch_size

    if not instruments:
        logger.error("종목이 지정되지 않았습니다 (--instrument 또는 config.strategy.instruments)")
        sys.exit(1)

    db = config.database
    client = get_client(db.host, db.port, db.database, db.user, db.password)
    if not verify_connection(client):
        logger.error("ClickHouse 연결 실패")
        sys.exit(1)
    initialize_schema(client)

    bar_store = ClickHouseBarStore(client)
    interpretation_store = ClickHouseInterpretationStore(client)
    service = OIEnrichmentService(bar_store, interpretation_store, batch_size=batch_size)
    history = HistoricalDataService(bar_store, interpretation_store)

    try:
        if args.stats:
            for instrument in instruments:
                logger.info(f"{instrument}/{timeframe}: {history.bar_stats(instrument, timeframe).summary()}")
            return

        if args.delete:
            for instrument in instruments:
                history.delete_bars(instrument, args.timeframe)
            return

        if args.csv is not None:
            if len(instruments) != 1:
                logger.error("--csv 사용 시 종목은 하나만 지정해야 합니다")
                sys.exit(1)
            bars = load_csv_bars(args.csv, instruments[0], timeframe)
            result = service.store_bars(instruments[0], timeframe, bars)
            logger.info(f"{instruments[0]}: {result.total}봉 적재, OI 해석 {result.updated}건 기록")
            return

        for instrument in instruments:
            result = service.enrich(instrument, timeframe)
            counts = ", ".join(f"{k.value}={v}" for k, v in sorted(result.counts.items(), key=lambda kv: kv[0].value))
            logger.info(f"{instrument}: {result.updated}/{result.total} 갱신 ({counts or '없음'})")
    except TradingError as e:
        logger.error(f"OI 분석 실패: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

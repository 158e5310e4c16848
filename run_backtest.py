"""
백테스트 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml의 전략/종목 사용, 샘플 데이터)
    python run_backtest.py

    # 전략 지정
    python run_backtest.py --strategy sma_crossover

    # 파라미터 오버라이드
    python run_backtest.py -p short_period=5 -p long_period=30

    # ClickHouse 데이터 사용 (결과도 strategy_results 테이블에 저장)
    python run_backtest.py --source clickhouse

    # 백테스트 전에 OI 해석 요약 출력
    python run_backtest.py --enrich

    # 여러 전략 비교
    python run_backtest.py --compare sma_crossover

    # 등록된 전략 목록 확인
    python run_backtest.py --list
"""

import argparse
import zlib
from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

from paper_trading.analysis.oi_enrichment import OIEnrichmentService
from paper_trading.backtest.engine import BacktestEngine
from paper_trading.core.bar_source import Bar
from paper_trading.core.errors import TradingError
from paper_trading.core.ledger_store import StrategyResult
from paper_trading.stores.memory_store import InMemoryBarStore, InMemoryInterpretationStore
from paper_trading.strategies import list_strategies
from paper_trading.utils.config import Config
from paper_trading.utils.logger import setup_logger

DEFAULT_INSTRUMENTS = ["NIFTY", "BANKNIFTY"]

# pandas 주기 문자열
_FREQ = {
    "1m": "1min", "3m": "3min", "5m": "5min", "15m": "15min", "30m": "30min",
    "1h": "1h", "2h": "2h", "4h": "4h", "6h": "6h", "8h": "8h", "12h": "12h",
    "1d": "1D", "3d": "3D", "1w": "7D", "1M": "30D",
}


def to_epoch(value: Optional[str]) -> Optional[int]:
    """'YYYY-MM-DD' 또는 ISO 문자열 → epoch 초 (UTC)."""
    if not value:
        return None
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return int(ts.timestamp())


def generate_sample_bars(
    instrument: str,
    timeframe: str,
    start: str,
    periods: int = 500,
    initial_price: float = 20000,
    initial_oi: float = 1_000_000,
    volatility: float = 0.01,
) -> list[Bar]:
    """백테스트용 샘플 봉 데이터 생성 (OI 포함). 종목 이름으로 시드 고정."""
    rng = np.random.default_rng(zlib.crc32(instrument.encode()))

    times = pd.date_range(start=start, periods=periods, freq=_FREQ[timeframe], tz="UTC")
    returns = rng.normal(0.0002, volatility, periods)
    closes = initial_price * np.cumprod(1 + returns)
    oi = initial_oi * np.cumprod(1 + rng.normal(0, 0.02, periods))

    bars = []
    for i, t in enumerate(times):
        close = float(closes[i])
        open_price = close * (1 + rng.normal(0, 0.003))
        high = max(open_price, close) * (1 + abs(rng.normal(0, 0.004)))
        low = min(open_price, close) * (1 - abs(rng.normal(0, 0.004)))
        bars.append(Bar(
            instrument=instrument,
            timeframe=timeframe,
            epoch_time=int(t.timestamp()),
            open=round(open_price, 2),
            high=round(high, 2),
            low=round(low, 2),
            close=round(close, 2),
            volume=float(int(rng.lognormal(10, 1))),
            open_interest=float(round(oi[i])),
        ))
    return bars


def parse_param(param_str: str) -> tuple[str, object]:
    """'key=value' 문자열을 파싱하여 (key, value) 반환. 숫자면 자동 변환."""
    key, _, value = param_str.partition("=")
    key = key.strip()
    value = value.strip()

    # 숫자 자동 변환
    try:
        if "." in value:
            return key, float(value)
        return key, int(value)
    except ValueError:
        if value.lower() in ("true", "yes"):
            return key, True
        if value.lower() in ("false", "no"):
            return key, False
        return key, value


def build_stores(config: Config, source: str):
    """(bar_store, interpretation_store, result_store) 생성."""
    instruments = config.strategy.instruments or DEFAULT_INSTRUMENTS
    timeframe = config.backtest.timeframe

    if source == "sample":
        print("샘플 데이터 생성 중...")
        store = InMemoryBarStore()
        start = config.backtest.start or "2024-01-01"
        for instrument in instruments:
            bars = generate_sample_bars(instrument, timeframe, start)
            store.upsert_bars(bars)
            print(f"  {instrument}: {len(bars)}봉 ({timeframe})")
        return store, InMemoryInterpretationStore(), None

    print("ClickHouse에서 데이터 조회 중...")
    from paper_trading.data.clickhouse_store import (
        ClickHouseBarStore,
        ClickHouseInterpretationStore,
        ClickHouseStrategyResultStore,
    )
    from paper_trading.ingestion.clickhouse_schema import get_client, initialize_schema

    db = config.database
    client = get_client(db.host, db.port, db.database, db.user, db.password)
    initialize_schema(client)
    store = ClickHouseBarStore(client)
    print(f"  ClickHouse에 저장된 종목: {store.get_instruments()}")
    return store, ClickHouseInterpretationStore(client), ClickHouseStrategyResultStore(client)


def print_enrichment(service: OIEnrichmentService, instruments: list[str], timeframe: str) -> None:
    """종목별 OI 해석 분포 출력."""
    rows = []
    for instrument in instruments:
        result = service.enrich(instrument, timeframe)
        row = {"instrument": instrument, "bars": result.total, "rejected": len(result.rejected)}
        row.update({k.value: v for k, v in result.counts.items()})
        rows.append(row)

    df = pd.DataFrame(rows).fillna(0).set_index("instrument")
    print("\nOI 해석 분포:")
    print(df.to_string())


def print_results(strategy_name: str, results: list[StrategyResult], engine: BacktestEngine) -> None:
    """종목별 결과 출력."""
    print(f"\n[전략: {strategy_name}]")
    for r in results:
        print(
            f"  {r.instrument:<12} 거래 {r.total_trades:>4}회  승률 {r.win_rate * 100:6.2f}%  "
            f"손익 {r.total_pnl:>14,.2f}  샤프 {r.sharpe_ratio:7.4f}  MDD {r.max_drawdown * 100:6.2f}%"
        )
    if engine.metrics is not None:
        print(f"\n마지막 종목 ({results[-1].instrument}) 상세:")
        print(engine.metrics.summary())


def print_comparison(results: dict[str, list[StrategyResult]]) -> None:
    """여러 전략 비교 결과 출력 (종목 합계 기준)."""
    frame = pd.DataFrame([
        {
            "strategy": name,
            "trades": sum(r.total_trades for r in rs),
            "wins": sum(r.winning_trades for r in rs),
            "total_pnl": sum(r.total_pnl for r in rs),
            "avg_sharpe": float(np.mean([r.sharpe_ratio for r in rs])) if rs else 0.0,
            "max_drawdown": max((r.max_drawdown for r in rs), default=0.0),
        }
        for name, rs in results.items()
    ]).set_index("strategy")
    frame["win_rate"] = (frame["wins"] / frame["trades"].where(frame["trades"] > 0)).fillna(0.0)

    print(f"\n{'=' * 70}")
    print("전략 비교 결과")
    print(f"{'=' * 70}")
    print(frame.to_string(float_format=lambda v: f"{v:,.4f}"))
    print(f"{'=' * 70}")


def main():
    parser = argparse.ArgumentParser(description="모의투자 백테스트 실행")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--strategy", type=str, default=None, help="전략 이름 (config.yaml 대신 지정)")
    parser.add_argument("-p", "--param", action="append", default=[], help="파라미터 오버라이드 (예: -p short_period=5)")
    parser.add_argument("--source", type=str, default="sample", choices=["sample", "clickhouse"], help="데이터 소스")
    parser.add_argument("--enrich", action="store_true", help="백테스트 전에 OI 해석 분석 실행")
    parser.add_argument("--compare", nargs="+", metavar="STRATEGY", help="여러 전략 비교")
    parser.add_argument("--list", action="store_true", help="등록된 전략 목록 출력")
    args = parser.parse_args()

    # 전략 목록 출력
    if args.list:
        print("등록된 전략:")
        for name in list_strategies():
            print(f"  - {name}")
        return

    # 설정 로드
    config_path = Path(args.config)
    if config_path.exists():
        config = Config.from_yaml(config_path)
    else:
        print(f"설정 파일 없음: {config_path}, 기본값 사용")
        config = Config()

    setup_logger(level=config.log_level, log_dir=config.log_dir)

    instruments = config.strategy.instruments or DEFAULT_INSTRUMENTS
    timeframe = config.backtest.timeframe
    start = to_epoch(config.backtest.start)
    end = to_epoch(config.backtest.end)

    bar_store, interpretation_store, result_store = build_stores(config, args.source)

    if args.enrich:
        service = OIEnrichmentService(bar_store, interpretation_store, batch_size=config.oi.batch_size)
        print_enrichment(service, instruments, timeframe)

    engine = BacktestEngine(result_store=result_store, timeout_seconds=config.backtest.timeout_seconds)

    try:
        # ─── 비교 모드 ───────────────────────────────────────────────────
        if args.compare:
            print(f"\n{len(args.compare)}개 전략 비교 실행...")
            results = {}
            for name in args.compare:
                params = {**config.strategy.params, "type": name}
                results[name] = engine.deploy(params, instruments, bar_store, timeframe, start, end)
            print_comparison(results)
            return

        # ─── 단일 실행 모드 ─────────────────────────────────────────────
        strategy_name = args.strategy or config.strategy.name
        strategy_params = {**config.strategy.params, "type": strategy_name}

        # CLI 파라미터 오버라이드
        for p in args.param:
            key, value = parse_param(p)
            strategy_params[key] = value

        print(f"\n전략: {strategy_name}")
        if args.param:
            print(f"파라미터 오버라이드: {dict(parse_param(p) for p in args.param)}")

        results = engine.deploy(strategy_params, instruments, bar_store, timeframe, start, end)
        print_results(strategy_name, results, engine)
    except TradingError as e:
        print(f"\n오류: {e}")
        if args.source == "clickhouse":
            print("  scripts/enrich_oi.py --csv 로 봉 데이터를 적재하거나")
            print("  --source sample 옵션으로 샘플 데이터를 사용하세요.")


if __name__ == "__main__":
    main()

"""
=============================================================================
모의투자 분석/회계 코어 (Paper Trading Core)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (진입점)          scripts/enrich_oi.py (OI 일괄 분석)
         │                                  │
         ├── utils/config.py        ← config.yaml 설정 로드
         ├── utils/logger.py        ← 로깅
         │
         ├── strategies/            ← 매매 전략 (시그널 생성)
         │     └── sma_crossover.py
         │
         ├── backtest/engine.py     ← 백테스트 실행 엔진
         │     ├── data/ledger.py       ← 포지션 원장 (가중평균 단가)
         │     └── backtest/metrics.py  ← 성과 지표 계산
         │
         └── analysis/oi_enrichment.py ← 봉 시리즈 OI 해석 일괄 분석
               └── analysis/oi_classifier.py (가격/OI 4분면 분류)


[ 핵심 추상 클래스 (core/) - 모든 구현체의 부모 ]

    core/bar_source.py           → stores/memory_store.py::InMemoryBarStore (테스트/샘플용)
                                 → data/clickhouse_store.py::ClickHouseBarStore

    core/ledger_store.py         → stores/memory_store.py::InMemoryLedgerStore
                                 → data/clickhouse_store.py::ClickHouseLedgerStore

    core/interpretation_store.py → stores/memory_store.py::InMemoryInterpretationStore
                                 → data/clickhouse_store.py::ClickHouseInterpretationStore

    core/trading_strategy.py     → strategies/sma_crossover.py (SMA 교차 전략)


[ 데이터 흐름 ]

    1. config.yaml에서 전략/백테스트 파라미터 로드
    2. BarSource가 봉(OHLCV + OI) 시리즈 제공
    3. OIEnrichmentService가 연속 봉 쌍마다 OI 해석을 계산하여 저장
    4. TradingStrategy가 종가 시리즈로 시그널(매수/매도/홀드) 생성
    5. BacktestEngine이 시그널에 따라 PositionLedger에 진입/청산 기록
    6. metrics.py가 청산 포지션으로 성과 지표 계산 → StrategyResult
"""

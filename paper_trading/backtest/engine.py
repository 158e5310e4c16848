"""
백테스팅 엔진 모듈.

[ 역할 ]
    봉 시리즈에 전략을 적용하여 가상 매매를 시뮬레이션하고 성과를 측정.
    모든 진입/청산은 data/ledger.py::PositionLedger를 통해 실제 원장 변경으로 기록된다.

[ 실행 흐름 ]
    run() 호출 시:
        1. 입력 검증 (빈 봉, 역순 봉, start > end)
        2. strategy_params["type"]으로 전략 생성 (기본 sma_crossover)
        3. index = strategy.warmup .. n-1 에 대해 generate_signal() 호출
           → BUY: ledger.open_or_add() 로 신규 포지션
           → SELL: 가장 최근에 연 포지션을 ledger.close()
        4. metrics.calculate_metrics()로 청산 포지션 성과 계산
        5. StrategyResult 생성 (result_store가 있으면 저장)

[ 원장 범위 ]
    ledger를 주입하지 않으면 실행마다 새 인메모리 원장을 쓴다.
    실제 원장을 주입하는 경우 strategy_id로 시뮬레이션 포지션을 구분해야 한다.

[ 의존성 ]
    - strategies/__init__.py::strategy_from_params (전략 생성)
    - data/ledger.py::PositionLedger (포지션/보유 관리)
    - backtest/metrics.py::calculate_metrics() (성과 계산)

[ 호출하는 곳 ]
    - run_backtest.py (진입점)에서 생성 및 실행
"""

import logging
import time
from typing import Any, Optional, Sequence

import numpy as np

from paper_trading.backtest.metrics import BacktestMetrics, calculate_metrics
from paper_trading.core.bar_source import Bar, BarSource, validate_instrument, validate_timeframe
from paper_trading.core.errors import BacktestTimeoutError, ValidationError
from paper_trading.core.ledger_store import (
    Position,
    Side,
    StrategyResult,
    StrategyResultStore,
    TimeLike,
    to_datetime,
)
from paper_trading.core.trading_strategy import SignalType
from paper_trading.data.ledger import PositionLedger
from paper_trading.stores.memory_store import InMemoryLedgerStore
from paper_trading.strategies import strategy_from_params

logger = logging.getLogger("paper_trading.backtest")


class BacktestEngine:
    """백테스팅 엔진. run()으로 시뮬레이션 실행."""

    def __init__(
        self,
        ledger: Optional[PositionLedger] = None,
        result_store: Optional[StrategyResultStore] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.ledger = ledger
        self.result_store = result_store
        self.timeout_seconds = timeout_seconds

        # 백테스트 실행 후 채워지는 결과
        self.last_ledger: Optional[PositionLedger] = None
        self.positions: list[Position] = []              # 이번 실행에서 연 포지션 (최종 상태)
        self.metrics: Optional[BacktestMetrics] = None   # 최종 성과 지표

    def run(
        self,
        strategy_params: Optional[dict[str, Any]],
        instrument: str,
        bars: Sequence[Bar],
        start_time: Optional[TimeLike] = None,
        end_time: Optional[TimeLike] = None,
        strategy_id: Optional[str] = None,
    ) -> StrategyResult:
        """백테스트 실행.

        Args:
            strategy_params: {"type": "sma_crossover", "short_period": 10, ...}
            instrument: 종목 코드
            bars: [start_time, end_time]로 이미 걸러진 오름차순 봉 목록
            start_time / end_time: 결과에 기록할 기간 (없으면 첫/마지막 봉 시각)
            strategy_id: 포지션/결과에 붙일 식별자 (없으면 전략 이름)

        Returns:
            StrategyResult: 성과 요약

        Raises:
            ValidationError: 빈 봉, 역순 봉, start > end, 잘못된 전략 파라미터
            BacktestTimeoutError: timeout_seconds 초과
        """
        if not bars:
            raise ValidationError(f"봉 데이터가 없음: {instrument}")
        for previous, current in zip(bars, bars[1:]):
            if current.epoch_time < previous.epoch_time:
                raise ValidationError(
                    f"봉이 시간 오름차순이 아님: {previous.epoch_time} → {current.epoch_time}"
                )

        start = to_datetime(start_time if start_time is not None else bars[0].epoch_time)
        end = to_datetime(end_time if end_time is not None else bars[-1].epoch_time)
        if start > end:
            raise ValidationError(f"시작 시각이 종료 시각보다 늦음: {start} > {end}")

        strategy = strategy_from_params(strategy_params)
        strategy_id = strategy_id or strategy.name
        ledger = self.ledger or PositionLedger(InMemoryLedgerStore())

        self.last_ledger = ledger
        self.positions = []
        self.metrics = None

        closes = np.array([bar.close for bar in bars], dtype=float)
        started = time.monotonic()
        active: Optional[Position] = None

        logger.info(
            f"백테스트 시작: {strategy_id} {instrument} {start:%Y-%m-%d %H:%M} ~ {end:%Y-%m-%d %H:%M} ({len(bars)}봉)"
        )

        for i in range(strategy.warmup, len(bars)):
            self._check_timeout(started, strategy_id, instrument, i)

            signal = strategy.generate_signal(closes, i, active is not None)
            bar_time = to_datetime(bars[i].epoch_time)

            if signal.signal_type == SignalType.BUY and active is None:
                active = ledger.open_or_add(
                    instrument,
                    Side.BUY,
                    price=signal.price,
                    quantity=signal.quantity,
                    time=bar_time,
                    strategy_id=strategy_id,
                )
                self.positions.append(active)
                logger.debug(f"[{bar_time:%Y-%m-%d %H:%M}] 진입: {instrument} {signal.quantity:g} @ {signal.price:,.4f} ({signal.reason})")

            elif signal.signal_type == SignalType.SELL and active is not None:
                closed = ledger.close(active.id, signal.price, bar_time)
                self.positions[-1] = closed
                active = None
                logger.debug(f"[{bar_time:%Y-%m-%d %H:%M}] 청산: {instrument} pnl {closed.pnl:+,.2f} ({signal.reason})")

        closed_positions = [p for p in self.positions if not p.is_open]
        self.metrics = calculate_metrics(closed_positions)

        result = StrategyResult(
            strategy_id=strategy_id,
            instrument=instrument,
            total_trades=self.metrics.total_trades,
            winning_trades=self.metrics.winning_trades,
            total_pnl=self.metrics.total_pnl,
            max_drawdown=self.metrics.max_drawdown,
            win_rate=self.metrics.win_rate,
            sharpe_ratio=self.metrics.sharpe_ratio,
            start_time=start,
            end_time=end,
        )
        if self.result_store is not None:
            self.result_store.save_result(result)

        logger.info(
            f"백테스트 완료: {strategy_id} {instrument} 거래 {result.total_trades}회, "
            f"총 손익 {result.total_pnl:+,.2f}"
        )
        return result

    def deploy(
        self,
        strategy_params: Optional[dict[str, Any]],
        instruments: Sequence[str],
        bar_source: BarSource,
        timeframe: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        strategy_id: Optional[str] = None,
    ) -> list[StrategyResult]:
        """여러 종목에 같은 전략을 백테스트. 종목 순서대로 결과 반환.

        Raises:
            ValidationError: 종목 목록이 비었거나 start >= end, 데이터 없는 종목
        """
        if not instruments:
            raise ValidationError("종목을 하나 이상 지정해야 함")
        if start is not None and end is not None and start >= end:
            raise ValidationError(f"시작 시각이 종료 시각보다 빨라야 함: {start} >= {end}")
        validate_timeframe(timeframe)

        results = []
        for instrument in instruments:
            validate_instrument(instrument)
            bars = bar_source.fetch_bars(instrument, timeframe, start=start, end=end)
            results.append(self.run(
                strategy_params,
                instrument,
                bars,
                start_time=start,
                end_time=end,
                strategy_id=strategy_id,
            ))
        return results

    def _check_timeout(self, started: float, strategy_id: str, instrument: str, index: int) -> None:
        if self.timeout_seconds is None:
            return
        elapsed = time.monotonic() - started
        if elapsed > self.timeout_seconds:
            raise BacktestTimeoutError(
                f"백테스트 시간 초과: {strategy_id} {instrument} "
                f"({elapsed:.2f}s > {self.timeout_seconds}s, {index}번째 봉에서 중단)"
            )

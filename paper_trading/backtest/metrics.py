"""
백테스트 성과 지표 계산 모듈.

[ 역할 ]
    백테스트에서 청산된 포지션 목록을 받아 성과 지표를 계산.
    calculate_metrics() 함수가 핵심.

[ 계산하는 지표 ]
    - 총 거래 수 / 수익 거래 수 / 승률 (0~1)
    - 총 손익
    - 샤프 비율: 거래별 수익률 pnl / (진입가 × 수량)의 평균 / 모표준편차
    - MDD: 누적 손익의 고점 대비 하락폭 / max(고점, 1)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run() 완료 시 호출

[ 입력 데이터 ]
    - closed_positions: 이번 실행에서 CLOSED된 Position 목록
      (청산 시각 순으로 정렬하여 계산)
"""

from dataclasses import asdict, dataclass
from typing import Any

import numpy as np

from paper_trading.core.ledger_store import Position

# 이 값 이하의 표준편차는 0으로 본다 (평균 크기에 비례)
STD_EPSILON = 1e-12


@dataclass
class BacktestMetrics:
    """백테스트 성과 지표. summary()로 포맷된 리포트 출력 가능."""
    total_trades: int = 0             # 청산된 포지션 수
    winning_trades: int = 0           # pnl > 0 인 포지션 수
    losing_trades: int = 0            # pnl <= 0 인 포지션 수
    win_rate: float = 0.0             # 승률 (0~1)
    total_pnl: float = 0.0            # 총 실현 손익
    avg_profit: float = 0.0           # 수익 거래 평균 이익
    avg_loss: float = 0.0             # 손실 거래 평균 손실
    sharpe_ratio: float = 0.0         # 거래 단위 샤프 비율 (연환산 없음)
    max_drawdown: float = 0.0         # 최대 낙폭 (비율, 0 이상)

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리 변환."""
        return asdict(self)

    def summary(self) -> str:
        """성과 요약 문자열."""
        lines = [
            "=" * 50,
            "백테스트 성과 리포트",
            "=" * 50,
            f"총 손익:         {self.total_pnl:>12,.2f}",
            f"샤프 비율:       {self.sharpe_ratio:>12.4f}",
            f"최대 낙폭(MDD):  {self.max_drawdown * 100:>11.2f}%",
            "-" * 50,
            f"총 거래 횟수:    {self.total_trades:>12d}",
            f"승률:            {self.win_rate * 100:>11.2f}%",
            f"수익 거래:       {self.winning_trades:>12d}",
            f"손실 거래:       {self.losing_trades:>12d}",
            f"평균 수익:       {self.avg_profit:>12,.2f}",
            f"평균 손실:       {self.avg_loss:>12,.2f}",
            "=" * 50,
        ]
        return "\n".join(lines)


def sharpe_ratio(returns: list[float]) -> float:
    """평균 / 모표준편차. 표준편차가 0이거나 표본이 없으면 0."""
    if not returns:
        return 0.0
    arr = np.asarray(returns, dtype=float)
    mean = float(np.mean(arr))
    std = float(np.std(arr))  # ddof=0
    # 동일 수익률의 std는 0이 아니라 부동소수 잡음으로 나온다
    if np.isclose(std, 0.0, atol=STD_EPSILON * max(1.0, abs(mean))):
        return 0.0
    return mean / std


def max_drawdown(pnls: list[float]) -> float:
    """누적 손익 기준 최대 낙폭.

    고점은 0에서 시작하고, 고점이 1 이하일 때는 1로 나눈다.
    """
    running = 0.0
    peak = 0.0
    max_dd = 0.0
    for pnl in pnls:
        running += pnl
        if running > peak:
            peak = running
        dd = (peak - running) / max(peak, 1.0)
        if dd > max_dd:
            max_dd = dd
    return max_dd


def calculate_metrics(closed_positions: list[Position]) -> BacktestMetrics:
    """성과 지표 계산. engine.py에서 백테스트 완료 후 호출됨.

    Args:
        closed_positions: CLOSED 상태의 Position 목록 (pnl이 채워져 있어야 함)
    """
    metrics = BacktestMetrics()

    trades = sorted(
        (p for p in closed_positions if p.pnl is not None),
        key=lambda p: (p.exit_time, p.entry_time),
    )
    metrics.total_trades = len(trades)
    if not trades:
        return metrics

    pnls = [float(p.pnl) for p in trades]
    winners = [p for p in pnls if p > 0]
    losers = [p for p in pnls if p <= 0]

    metrics.winning_trades = len(winners)
    metrics.losing_trades = len(losers)
    metrics.win_rate = len(winners) / len(trades)
    metrics.total_pnl = sum(pnls)
    if winners:
        metrics.avg_profit = sum(winners) / len(winners)
    if losers:
        metrics.avg_loss = sum(losers) / len(losers)

    # 거래별 수익률: 진입 금액 대비 손익
    returns = [p.pnl / (p.entry_price * p.quantity) for p in trades]
    metrics.sharpe_ratio = sharpe_ratio(returns)
    metrics.max_drawdown = max_drawdown(pnls)

    return metrics

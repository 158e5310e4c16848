"""
단기/장기 SMA 교차(crossover) 전략 구현.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체.
    "단기 SMA가 장기 SMA를 상향 돌파하면 매수, 하향 돌파하면 청산"

[ 전략 흐름 ]
    index = long_period 부터 봉마다 generate_signal() 호출됨 (← backtest/engine.py에서)
        ├── sma()로 i, i-1 시점의 단기/장기 SMA 계산
        ├── 보유 중이면 should_sell() 체크
        │     └── 데드크로스 (prev_short >= prev_long, short < long) → SELL
        └── 미보유면 should_buy() 체크
              └── 골든크로스 (prev_short <= prev_long, short > long) → BUY

[ SMA 계산 ]
    SMA(i, period) = closes[max(0, i-period+1) .. i] 의 평균.
    시리즈 앞부분에서 봉이 period개보다 적으면 있는 만큼만 평균한다.

[ 파라미터 (config.yaml의 strategy.params에서 로드) ]
    short_period: 단기 SMA 기간 (기본 10)
    long_period:  장기 SMA 기간 (기본 20)
    quantity:     진입 수량 (기본 100)
"""

from typing import Any

import numpy as np

from paper_trading.core.errors import ValidationError
from paper_trading.core.trading_strategy import Signal, SignalType, TradingStrategy
from paper_trading.strategies import register


def sma(closes: np.ndarray, index: int, period: int) -> float:
    """index를 포함한 직전 period개 종가의 평균 (시리즈 시작에서 잘림)."""
    start = max(0, index - period + 1)
    return float(np.mean(closes[start:index + 1]))


@register("sma_crossover")
class SMACrossoverStrategy(TradingStrategy):
    """SMA 교차 전략 구현체."""

    DEFAULT_PARAMS = {
        "short_period": 10,
        "long_period": 20,
        "quantity": 100,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="sma_crossover", params=merged)
        for key in ("short_period", "long_period"):
            value = merged[key]
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValidationError(f"{key}는 양의 정수여야 함: {value!r}")
        if float(merged["quantity"]) <= 0:
            raise ValidationError(f"quantity는 양수여야 함: {merged['quantity']!r}")

    @property
    def short_period(self) -> int:
        return int(self.params["short_period"])

    @property
    def long_period(self) -> int:
        return int(self.params["long_period"])

    @property
    def quantity(self) -> float:
        return float(self.params["quantity"])

    @property
    def warmup(self) -> int:
        return self.long_period

    def averages(self, closes: np.ndarray, index: int) -> tuple[float, float, float, float]:
        """(prev_short, prev_long, short, long) 반환."""
        return (
            sma(closes, index - 1, self.short_period),
            sma(closes, index - 1, self.long_period),
            sma(closes, index, self.short_period),
            sma(closes, index, self.long_period),
        )

    def should_buy(self, closes: np.ndarray, index: int, position_open: bool) -> tuple[bool, str]:
        """매수 조건: 미보유 + 골든크로스."""
        if position_open:
            return False, "이미 보유 중"
        prev_short, prev_long, short, long = self.averages(closes, index)
        if prev_short <= prev_long and short > long:
            return True, f"골든크로스 (SMA{self.short_period}: {short:,.4f} > SMA{self.long_period}: {long:,.4f})"
        return False, "골든크로스 아님"

    def should_sell(self, closes: np.ndarray, index: int, position_open: bool) -> tuple[bool, str]:
        """매도 조건: 보유 중 + 데드크로스."""
        if not position_open:
            return False, "보유 포지션 없음"
        prev_short, prev_long, short, long = self.averages(closes, index)
        if prev_short >= prev_long and short < long:
            return True, f"데드크로스 (SMA{self.short_period}: {short:,.4f} < SMA{self.long_period}: {long:,.4f})"
        return False, "데드크로스 아님"

    def generate_signal(self, closes: np.ndarray, index: int, position_open: bool) -> Signal:
        """매매 시그널 생성. 보유 중이면 청산만, 미보유면 진입만 판단."""
        if index < 1 or index >= len(closes):
            return Signal(signal_type=SignalType.HOLD, index=index, reason="판단 불가 인덱스")

        price = float(closes[index])

        if position_open:
            sell, reason = self.should_sell(closes, index, position_open)
            if sell:
                return Signal(signal_type=SignalType.SELL, index=index, price=price, reason=reason)
            return Signal(signal_type=SignalType.HOLD, index=index, price=price, reason=reason)

        buy, reason = self.should_buy(closes, index, position_open)
        if buy:
            signal = Signal(signal_type=SignalType.BUY, index=index, price=price, reason=reason)
            signal.quantity = self.calculate_position_size(signal)
            return signal
        return Signal(signal_type=SignalType.HOLD, index=index, price=price, reason=reason)

    def calculate_position_size(self, signal: Signal) -> float:
        """고정 수량 진입."""
        return self.quantity

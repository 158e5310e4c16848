"""
매매 전략 추상 클래스 정의.

[ 역할 ]
    백테스트용 매매 로직의 인터페이스를 정의.
    종가 시리즈와 현재 인덱스, 보유 여부를 받아 매수/매도/홀드 시그널을 생성.

[ 구현체 ]
    - strategies/sma_crossover.py::SMACrossoverStrategy (단기/장기 SMA 교차 전략)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run()에서
      봉마다 generate_signal()을 호출하여 시그널을 받고 Ledger로 주문 실행

[ 데이터 흐름 ]
    closes(np.ndarray) + index + position_open → generate_signal() → Signal 반환
    Signal.signal_type이 BUY/SELL이면 엔진이 포지션 진입/청산
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np


class SignalType(Enum):
    """전략이 반환하는 시그널 종류."""
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


@dataclass
class Signal:
    """generate_signal()의 반환값. 엔진에 전달되어 포지션 진입/청산으로 변환됨."""
    signal_type: SignalType
    index: int
    price: float = 0.0       # 시그널 발생 봉의 종가
    quantity: float = 0.0    # 진입 수량 (SELL은 엔진이 포지션 수량 사용)
    reason: str = ""         # 시그널 발생 사유 (로깅용)
    metadata: dict[str, Any] = field(default_factory=dict)


class TradingStrategy(ABC):
    """매매 전략 추상 클래스.

    새 전략을 만들려면 이 클래스를 상속받아 4개 메서드를 구현하면 된다:
    - generate_signal(): 핵심 시그널 생성 (should_buy/should_sell 내부 호출)
    - calculate_position_size(): 진입 수량 결정
    - should_buy(): 매수 조건 판단
    - should_sell(): 매도 조건 판단
    """

    def __init__(self, name: str, params: dict[str, Any] | None = None):
        self.name = name
        self.params = params or {}  # config.yaml에서 로드된 전략 파라미터

    @property
    def warmup(self) -> int:
        """시그널 판단을 시작할 첫 인덱스. 기본은 0."""
        return 0

    @abstractmethod
    def generate_signal(self, closes: np.ndarray, index: int, position_open: bool) -> Signal:
        """index 시점의 매매 시그널 생성.

        Args:
            closes: 오름차순 종가 배열 (전체 시리즈)
            index: 판단 대상 봉 인덱스 (closes[index]까지만 사용해야 함)
            position_open: 이번 실행에서 진입한 포지션이 열려 있는지

        Returns:
            Signal: 매수/매도/홀드 시그널
        """
        ...

    @abstractmethod
    def calculate_position_size(self, signal: Signal) -> float:
        """진입 수량 계산."""
        ...

    @abstractmethod
    def should_buy(self, closes: np.ndarray, index: int, position_open: bool) -> tuple[bool, str]:
        """매수 조건 판단.

        Returns:
            (매수 여부, 사유)
        """
        ...

    @abstractmethod
    def should_sell(self, closes: np.ndarray, index: int, position_open: bool) -> tuple[bool, str]:
        """매도 조건 판단.

        Returns:
            (매도 여부, 사유)
        """
        ...

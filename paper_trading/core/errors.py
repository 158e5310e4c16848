"""
예외 계층 정의.

[ 역할 ]
    원장/백테스트/OI 분류기에서 발생하는 오류를 종류별로 구분.
    호출자(CLI, 스케줄러, HTTP 레이어)는 예외 타입만 보고 처리 방식을 결정한다.

[ 분류 ]
    ValidationError      - 잘못된 입력 (가격/수량 <= 0, 빈 봉 목록, 잘못된 타임프레임, start > end)
                           → 호출자에게 그대로 전달, 재시도 없음
    NotFoundError        - 존재하지 않는 포지션/전략/종목 → 전달, 재시도 없음
    DataQualityError     - 봉 데이터 결함 (타임스탬프 역전, 가격/OI 누락)
                           → OI 일괄 분석에서 해당 쌍만 건너뛰고 계속 진행
    BacktestTimeoutError - 백테스트 소프트 타임아웃 초과 (부분 결과 반환 금지)
"""


class TradingError(Exception):
    """모든 도메인 예외의 부모."""


class ValidationError(TradingError, ValueError):
    """입력값 검증 실패."""


class NotFoundError(TradingError, LookupError):
    """대상 엔티티 없음."""


class DataQualityError(TradingError, ValueError):
    """봉 데이터 품질 문제. 쌍 단위로 복구한다."""


class BacktestTimeoutError(TradingError, TimeoutError):
    """백테스트가 timeout_seconds를 넘겨 중단됨."""

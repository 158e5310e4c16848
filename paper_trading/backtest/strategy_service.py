"""
전략 레코드 관리 및 배포 서비스.

[ 역할 ]
    이름 붙은 전략 설정을 생성/수정/삭제하고 운용 상태를 바꾼다.
    deploy()는 레코드의 파라미터로 BacktestEngine.deploy()를 돌리고
    결과를 레코드 id로 저장한다.

[ 규칙 ]
    - name은 1~100자이며 저장소 안에서 유일
    - params는 strategies/ 레지스트리로 실제 생성 가능한 값이어야 함
    - instruments는 하나 이상, 각각 종목 코드 규칙을 따름
    - OPEN 포지션이 남은 전략은 삭제할 수 없음
    - 배포하면 상태가 TESTING이 된다

[ 의존성 ]
    - core/strategy_store.py::StrategyStore
    - core/ledger_store.py::StrategyResultStore
    - data/ledger.py::PositionLedger (삭제 시 OPEN 포지션 확인)
    - backtest/engine.py::BacktestEngine
"""

import logging
from dataclasses import replace
from typing import Any, Optional, Sequence

from paper_trading.backtest.engine import BacktestEngine
from paper_trading.core.bar_source import BarSource, validate_instrument
from paper_trading.core.errors import NotFoundError, ValidationError
from paper_trading.core.ledger_store import PositionStatus, StrategyResult, StrategyResultStore, utc_now
from paper_trading.core.strategy_store import StrategyRecord, StrategyStatus, StrategyStore
from paper_trading.data.ledger import PositionLedger
from paper_trading.strategies import strategy_from_params

logger = logging.getLogger("paper_trading.strategy")

MAX_NAME_LENGTH = 100


def _validate_name(name: str) -> str:
    if not isinstance(name, str) or not 1 <= len(name.strip()) <= MAX_NAME_LENGTH:
        raise ValidationError(f"전략 이름은 1~{MAX_NAME_LENGTH}자여야 함: {name!r}")
    return name.strip()


def _validate_params(params: dict[str, Any]) -> dict[str, Any]:
    if not isinstance(params, dict):
        raise ValidationError(f"전략 파라미터는 dict여야 함: {params!r}")
    strategy_from_params(params)  # 생성 불가능한 파라미터면 ValidationError
    return dict(params)


def _validate_instruments(instruments: Sequence[str]) -> list[str]:
    if isinstance(instruments, str) or not instruments:
        raise ValidationError("종목을 하나 이상 지정해야 함")
    for instrument in instruments:
        validate_instrument(instrument)
    return list(instruments)


class StrategyService:

    def __init__(
        self,
        strategy_store: StrategyStore,
        result_store: StrategyResultStore,
        ledger: PositionLedger,
        timeout_seconds: Optional[float] = None,
    ):
        self.strategy_store = strategy_store
        self.result_store = result_store
        self.ledger = ledger
        self.timeout_seconds = timeout_seconds

    # ─── CRUD ──────────────────────────────────────────────────────────

    def create_strategy(
        self,
        name: str,
        params: dict[str, Any],
        instruments: Sequence[str],
        description: Optional[str] = None,
    ) -> StrategyRecord:
        record = StrategyRecord(
            name=_validate_name(name),
            params=_validate_params(params),
            instruments=_validate_instruments(instruments),
            description=description,
        )
        if self.strategy_store.get_strategy_by_name(record.name) is not None:
            raise ValidationError(f"이미 존재하는 전략 이름: {record.name}")

        self.strategy_store.insert_strategy(record)
        logger.info(f"전략 생성: {record.name} ({record.id})")
        return record

    def get_strategy(self, strategy_id: str) -> StrategyRecord:
        record = self.strategy_store.get_strategy(strategy_id)
        if record is None:
            raise NotFoundError(f"전략 없음: {strategy_id}")
        return record

    def list_strategies(self, status: Optional[StrategyStatus] = None) -> list[StrategyRecord]:
        return self.strategy_store.list_strategies(status)

    def update_strategy(
        self,
        strategy_id: str,
        name: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        instruments: Optional[Sequence[str]] = None,
        description: Optional[str] = None,
    ) -> StrategyRecord:
        """주어진 필드만 바꾼다. 이름을 바꾸면 중복 검사."""
        record = self.get_strategy(strategy_id)
        changes: dict[str, Any] = {}

        if name is not None:
            name = _validate_name(name)
            if name != record.name:
                if self.strategy_store.get_strategy_by_name(name) is not None:
                    raise ValidationError(f"이미 존재하는 전략 이름: {name}")
                changes["name"] = name
        if params is not None:
            changes["params"] = _validate_params(params)
        if instruments is not None:
            changes["instruments"] = _validate_instruments(instruments)
        if description is not None:
            changes["description"] = description

        updated = replace(record, **changes, updated_at=utc_now())
        return self.strategy_store.update_strategy(updated)

    def delete_strategy(self, strategy_id: str) -> None:
        """Raises: NotFoundError, ValidationError (OPEN 포지션이 남아 있음)"""
        record = self.get_strategy(strategy_id)
        open_positions = self.ledger.list_positions(status=PositionStatus.OPEN, strategy_id=strategy_id)
        if open_positions:
            raise ValidationError(
                f"OPEN 포지션 {len(open_positions)}건이 남은 전략은 삭제할 수 없음: {record.name}"
            )
        self.strategy_store.delete_strategy(strategy_id)
        logger.info(f"전략 삭제: {record.name} ({strategy_id})")

    # ─── 상태 ──────────────────────────────────────────────────────────

    def _set_status(self, strategy_id: str, status: StrategyStatus) -> StrategyRecord:
        record = self.get_strategy(strategy_id)
        updated = replace(record, status=status, updated_at=utc_now())
        self.strategy_store.update_strategy(updated)
        logger.info(f"전략 상태 변경: {record.name} {record.status.value} → {status.value}")
        return updated

    def activate_strategy(self, strategy_id: str) -> StrategyRecord:
        return self._set_status(strategy_id, StrategyStatus.ACTIVE)

    def deactivate_strategy(self, strategy_id: str) -> StrategyRecord:
        return self._set_status(strategy_id, StrategyStatus.INACTIVE)

    # ─── 배포 / 결과 ───────────────────────────────────────────────────

    def deploy(
        self,
        strategy_ids: Sequence[str],
        bar_source: BarSource,
        timeframe: str,
        instruments: Optional[Sequence[str]] = None,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> list[StrategyResult]:
        """전략별로 TESTING 전환 후 백테스트. instruments가 없으면 각 레코드의 종목 사용.

        결과 순서: 전략 순서 → 종목 순서.
        """
        if not strategy_ids:
            raise ValidationError("전략을 하나 이상 지정해야 함")
        records = [self.get_strategy(strategy_id) for strategy_id in strategy_ids]
        engine = BacktestEngine(result_store=self.result_store, timeout_seconds=self.timeout_seconds)

        results = []
        for record in records:
            self._set_status(record.id, StrategyStatus.TESTING)
            results.extend(engine.deploy(
                record.params,
                instruments if instruments is not None else record.instruments,
                bar_source,
                timeframe,
                start=start,
                end=end,
                strategy_id=record.id,
            ))
        return results

    def get_results(self, strategy_id: str) -> list[StrategyResult]:
        self.get_strategy(strategy_id)
        return self.result_store.list_results(strategy_id)

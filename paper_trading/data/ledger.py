"""
모의매매 포지션 원장 모듈.

[ 역할 ]
    체결(fill) 스트림을 받아 종목별 Holding(가중평균 단가)과
    개별 Position(lot)을 관리하고 실현/평가 손익을 계산.

[ 주요 구성 ]
    HoldingState   - (수량, 평균단가, 누적 실현손익) 상태
    apply_fill()   - 체결 1건에 대한 순수 상태 전이 함수
    PositionLedger - 저장소(LedgerStore)를 감싼 원장 서비스
                     open_or_add / close / mark_to_market

[ Holding 갱신 규칙 (가중평균 원가법) ]
    부호 있는 체결 수량 q (BUY +, SELL -), 체결가 p:
    - 무포지션:   수량 = q, 평균가 = p
    - 같은 방향:  평균가 = (기존수량*기존평균 + q*p) / (기존수량 + q)
    - 반대 방향:  청산분 = min(|기존수량|, |q|) 만큼 실현손익 발생
                  롱이면 청산분*(p - 평균가), 숏이면 청산분*(평균가 - p)
                  잔량 0 → 평균가 0 / 방향 전환 → 평균가 p / 그 외 평균가 유지
    FIFO/LIFO lot 매칭이 아니다. 부분 청산 결과가 달라지므로 바꾸지 말 것.

[ 동시성 ]
    같은 종목의 읽기-계산-쓰기 구간은 종목별 Lock으로 직렬화.
    서로 다른 종목은 병렬로 처리된다.

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine (합성 체결)
    - 실시간 모의매매 경로 (주문 체결 이벤트)
"""

import logging
import math
import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Any, Iterator, Optional

from paper_trading.core.errors import NotFoundError, ValidationError
from paper_trading.core.ledger_store import (
    Holding,
    LedgerStore,
    Position,
    PositionStatus,
    Side,
    TimeLike,
    to_datetime,
    utc_now,
)

logger = logging.getLogger("paper_trading.ledger")

# 부동소수 잔량을 0으로 간주하는 허용오차
QTY_EPSILON = 1e-12


@dataclass(frozen=True)
class HoldingState:
    """가중평균 원가 상태. lot 목록을 두지 않는다."""
    quantity: float = 0.0
    average_price: float = 0.0
    realized_pnl: float = 0.0


def apply_fill(state: HoldingState, signed_quantity: float, price: float) -> tuple[HoldingState, float]:
    """체결 1건 반영. (새 상태, 이번 체결로 발생한 실현손익) 반환."""
    qty = state.quantity
    q = signed_quantity

    if abs(qty) <= QTY_EPSILON:
        return HoldingState(q, price, state.realized_pnl), 0.0

    if (qty > 0) == (q > 0):
        new_qty = qty + q
        new_avg = (qty * state.average_price + q * price) / new_qty
        return HoldingState(new_qty, new_avg, state.realized_pnl), 0.0

    closing = min(abs(qty), abs(q))
    if qty > 0:
        realized = closing * (price - state.average_price)
    else:
        realized = closing * (state.average_price - price)

    new_qty = qty + q
    if abs(new_qty) <= QTY_EPSILON:
        new_qty = 0.0
        new_avg = 0.0
    elif abs(q) > abs(qty):
        new_avg = price
    else:
        new_avg = state.average_price

    return HoldingState(new_qty, new_avg, state.realized_pnl + realized), realized


@dataclass
class PnLReport:
    """손익 리포트. pnl_report()의 반환값."""
    total_pnl: float = 0.0
    realized_pnl: float = 0.0      # CLOSED 포지션 pnl 합
    unrealized_pnl: float = 0.0    # OPEN 포지션 평가손익 합
    total_trades: int = 0
    winning_trades: int = 0
    win_rate: float = 0.0
    positions: list[Position] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_pnl": self.total_pnl,
            "realized_pnl": self.realized_pnl,
            "unrealized_pnl": self.unrealized_pnl,
            "total_trades": self.total_trades,
            "winning_trades": self.winning_trades,
            "win_rate": self.win_rate,
        }


def coerce_side(side: Side | str) -> Side:
    if isinstance(side, Side):
        return side
    try:
        return Side(str(side).upper())
    except ValueError:
        raise ValidationError(f"side는 BUY 또는 SELL이어야 함: {side!r}") from None


def require_positive(name: str, value: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value) or value <= 0:
        raise ValidationError(f"{name}는 양수여야 함: {value!r}")
    return float(value)


class PositionLedger:
    """포지션 원장.

    Holding/Position 상태 전이는 이 클래스만 수행한다.
    저장소 쓰기 도중 실패하면 앞서 쓴 내용을 되돌려 all-or-nothing을 보장.
    """

    def __init__(self, store: LedgerStore):
        self.store = store
        self._locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    @contextmanager
    def instrument_lock(self, instrument: str) -> Iterator[None]:
        """종목별 배타 구간."""
        with self._locks_guard:
            lock = self._locks[instrument]
        with lock:
            yield

    # ─── 체결 ──────────────────────────────────────────────────────────

    def open_or_add(
        self,
        instrument: str,
        side: Side | str,
        price: float,
        quantity: float,
        time: Optional[TimeLike] = None,
        strategy_id: Optional[str] = None,
    ) -> Position:
        """체결 1건 반영. 항상 새 Position을 만들고 Holding을 갱신."""
        side = coerce_side(side)
        price = require_positive("price", price)
        quantity = require_positive("quantity", quantity)
        if not instrument:
            raise ValidationError("instrument가 비어 있음")
        time = to_datetime(time) if time is not None else utc_now()

        position = Position(
            instrument=instrument,
            side=side,
            entry_price=price,
            quantity=quantity,
            entry_time=time,
            strategy_id=strategy_id,
        )

        with self.instrument_lock(instrument):
            current = self.store.get_holding(instrument)
            state = HoldingState(
                current.quantity, current.average_price, current.realized_pnl
            ) if current else HoldingState()
            new_state, realized = apply_fill(state, side.sign * quantity, price)

            self.store.insert_position(position)
            try:
                self.store.upsert_holding(
                    instrument,
                    quantity=new_state.quantity,
                    average_price=new_state.average_price,
                    realized_pnl_delta=realized,
                    unrealized_pnl=(price - new_state.average_price) * new_state.quantity,
                    total_value=new_state.quantity * price,
                )
            except Exception:
                logger.error(f"Holding 갱신 실패, 포지션 롤백: {position.id}")
                self.store.delete_position(position.id)
                raise

        logger.debug(
            f"체결: {instrument} {side.value} {quantity:g} @ {price:,.4f} "
            f"→ 보유 {new_state.quantity:g} (평균 {new_state.average_price:,.4f}, 실현 {realized:+,.2f})"
        )
        return position

    def close(
        self,
        position_id: str,
        exit_price: float,
        exit_time: Optional[TimeLike] = None,
    ) -> Position:
        """OPEN 포지션 청산. pnl을 확정하고 Holding 실현손익에 누적.

        Holding의 수량/평균가는 건드리지 않는다 (청산은 체결이 아니라 lot 종료 이벤트).

        Raises:
            NotFoundError: 포지션이 없거나 이미 CLOSED
            ValidationError: exit_price <= 0, exit_time < entry_time
        """
        exit_price = require_positive("exit_price", exit_price)
        exit_time = to_datetime(exit_time) if exit_time is not None else utc_now()

        snapshot = self.store.get_position(position_id)
        if snapshot is None:
            raise NotFoundError(f"포지션 없음: {position_id}")

        with self.instrument_lock(snapshot.instrument):
            original = self.store.get_position(position_id)
            if original is None or not original.is_open:
                raise NotFoundError(f"포지션이 없거나 이미 청산됨: {position_id}")
            if exit_time < original.entry_time:
                raise ValidationError(
                    f"exit_time({exit_time})이 entry_time({original.entry_time})보다 이름"
                )

            pnl = original.pnl_at(exit_price)
            closed = replace(
                original,
                status=PositionStatus.CLOSED,
                exit_price=exit_price,
                exit_time=exit_time,
                pnl=pnl,
                unrealized_pnl=0.0,
            )

            self.store.update_position(closed)
            try:
                holding = self.store.get_holding(original.instrument)
                if holding is None:
                    # 저장소에 직접 넣은 포지션. 누적할 Holding이 없다.
                    logger.warning(f"Holding 없음, 실현손익 누적 생략: {original.instrument} ({position_id})")
                else:
                    self.store.upsert_holding(
                        original.instrument,
                        quantity=holding.quantity,
                        average_price=holding.average_price,
                        realized_pnl_delta=pnl,
                        unrealized_pnl=holding.unrealized_pnl,
                        total_value=holding.total_value,
                    )
            except Exception:
                logger.error(f"Holding 갱신 실패, 청산 롤백: {position_id}")
                self.store.update_position(original)
                raise

        logger.debug(
            f"청산: {closed.instrument} {closed.side.value} {closed.quantity:g} "
            f"{closed.entry_price:,.4f} → {exit_price:,.4f} (pnl {pnl:+,.2f})"
        )
        return closed

    def mark_to_market(self, instrument: str, current_price: float) -> None:
        """OPEN 포지션과 Holding의 평가손익 갱신. 실현손익은 변경하지 않음.

        중간에 저장소 쓰기가 실패하면 이미 갱신한 포지션을 원래 값으로 되돌린다.
        """
        current_price = require_positive("current_price", current_price)

        with self.instrument_lock(instrument):
            originals = self.store.list_positions(instrument, PositionStatus.OPEN)
            written: list[Position] = []
            try:
                for original in originals:
                    self.store.update_position(
                        replace(original, unrealized_pnl=original.pnl_at(current_price))
                    )
                    written.append(original)

                holding = self.store.get_holding(instrument)
                if holding is not None:
                    self.store.update_holding_mark(
                        instrument,
                        unrealized_pnl=(current_price - holding.average_price) * holding.quantity,
                        total_value=holding.quantity * current_price,
                    )
            except Exception:
                logger.error(f"평가 갱신 실패, 포지션 {len(written)}건 롤백: {instrument}")
                for original in written:
                    self.store.update_position(original)
                raise

    # ─── 조회 ──────────────────────────────────────────────────────────

    def get_holding(self, instrument: str) -> Optional[Holding]:
        return self.store.get_holding(instrument)

    def list_holdings(self) -> list[Holding]:
        return self.store.list_holdings()

    def get_position(self, position_id: str) -> Position:
        position = self.store.get_position(position_id)
        if position is None:
            raise NotFoundError(f"포지션 없음: {position_id}")
        return position

    def list_positions(
        self,
        instrument: Optional[str] = None,
        status: Optional[PositionStatus] = None,
        strategy_id: Optional[str] = None,
    ) -> list[Position]:
        return self.store.list_positions(instrument, status, strategy_id)

    def pnl_report(self, instrument: Optional[str] = None) -> PnLReport:
        """실현(청산 포지션) + 평가(보유 포지션) 손익 요약."""
        closed = self.store.list_positions(instrument, PositionStatus.CLOSED)
        opened = self.store.list_positions(instrument, PositionStatus.OPEN)

        realized = sum(p.pnl or 0.0 for p in closed)
        unrealized = sum(p.unrealized_pnl for p in opened)
        winners = sum(1 for p in closed if (p.pnl or 0.0) > 0)

        return PnLReport(
            total_pnl=realized + unrealized,
            realized_pnl=realized,
            unrealized_pnl=unrealized,
            total_trades=len(closed),
            winning_trades=winners,
            win_rate=winners / len(closed) if closed else 0.0,
            positions=closed + opened,
        )

"""
전략 레코드 서비스 테스트.
"""

import pytest

from paper_trading.backtest.strategy_service import StrategyService
from paper_trading.core.errors import NotFoundError, ValidationError
from paper_trading.core.ledger_store import Side
from paper_trading.core.strategy_store import StrategyStatus
from paper_trading.stores.memory_store import (
    InMemoryBarStore,
    InMemoryStrategyResultStore,
    InMemoryStrategyStore,
)

FAST = {"type": "sma_crossover", "short_period": 1, "long_period": 2}
CLOSES = [10, 9, 8, 11, 12, 10, 9, 13, 15, 14]


@pytest.fixture
def service(ledger):
    return StrategyService(InMemoryStrategyStore(), InMemoryStrategyResultStore(), ledger)


def test_create_and_get(service):
    record = service.create_strategy("fast-sma", FAST, ["NIFTY"], description="1/2 크로스")

    assert record.status is StrategyStatus.INACTIVE
    fetched = service.get_strategy(record.id)
    assert fetched.name == "fast-sma"
    assert fetched.params == FAST
    assert fetched.instruments == ["NIFTY"]


def test_duplicate_name_rejected(service):
    service.create_strategy("fast-sma", FAST, ["NIFTY"])
    with pytest.raises(ValidationError):
        service.create_strategy("fast-sma", {}, ["BANKNIFTY"])


@pytest.mark.parametrize("name, params, instruments", [
    ("", FAST, ["NIFTY"]),
    ("x" * 101, FAST, ["NIFTY"]),
    ("bad-type", {"type": "does_not_exist"}, ["NIFTY"]),
    ("bad-period", {"short_period": 5, "long_period": 0}, ["NIFTY"]),
    ("no-instruments", FAST, []),
    ("bad-instrument", FAST, ["NIFTY 50"]),
])
def test_invalid_strategy_rejected(service, name, params, instruments):
    with pytest.raises(ValidationError):
        service.create_strategy(name, params, instruments)
    assert service.list_strategies() == []


def test_update_changes_only_given_fields(service):
    record = service.create_strategy("fast-sma", FAST, ["NIFTY"], description="원본")
    service.create_strategy("other", FAST, ["NIFTY"])

    updated = service.update_strategy(record.id, instruments=["NIFTY", "BANKNIFTY"])
    assert updated.instruments == ["NIFTY", "BANKNIFTY"]
    assert updated.description == "원본"
    assert updated.params == FAST

    with pytest.raises(ValidationError):
        service.update_strategy(record.id, name="other")
    # 자기 이름으로 바꾸는 것은 허용
    assert service.update_strategy(record.id, name="fast-sma").name == "fast-sma"


def test_status_transitions(service):
    record = service.create_strategy("fast-sma", FAST, ["NIFTY"])

    assert service.activate_strategy(record.id).status is StrategyStatus.ACTIVE
    assert service.list_strategies(StrategyStatus.ACTIVE)[0].id == record.id
    assert service.deactivate_strategy(record.id).status is StrategyStatus.INACTIVE
    assert service.list_strategies(StrategyStatus.ACTIVE) == []


def test_unknown_strategy(service):
    for call in (
        service.get_strategy,
        service.activate_strategy,
        service.deactivate_strategy,
        service.delete_strategy,
        service.get_results,
    ):
        with pytest.raises(NotFoundError):
            call("missing")
    with pytest.raises(NotFoundError):
        service.update_strategy("missing", name="x")


def test_delete_refused_while_positions_open(service):
    record = service.create_strategy("fast-sma", FAST, ["NIFTY"])
    position = service.ledger.open_or_add("NIFTY", Side.BUY, 100, 1, strategy_id=record.id)

    with pytest.raises(ValidationError):
        service.delete_strategy(record.id)

    service.ledger.close(position.id, 101)
    service.delete_strategy(record.id)
    with pytest.raises(NotFoundError):
        service.get_strategy(record.id)


def test_deploy_sets_testing_and_stores_results(service, make_series):
    bar_store = InMemoryBarStore()
    bar_store.upsert_bars(make_series(CLOSES, instrument="NIFTY"))
    bar_store.upsert_bars(make_series(CLOSES[::-1], instrument="BANKNIFTY"))
    record = service.create_strategy("fast-sma", FAST, ["NIFTY", "BANKNIFTY"])

    results = service.deploy([record.id], bar_store, "1m")

    assert [r.instrument for r in results] == ["NIFTY", "BANKNIFTY"]
    assert all(r.strategy_id == record.id for r in results)
    assert results[0].total_trades == 2
    assert service.get_strategy(record.id).status is StrategyStatus.TESTING
    assert len(service.get_results(record.id)) == 2


def test_deploy_instrument_override_and_validation(service, make_series):
    bar_store = InMemoryBarStore()
    bar_store.upsert_bars(make_series(CLOSES))
    record = service.create_strategy("fast-sma", FAST, ["BANKNIFTY"])

    results = service.deploy([record.id], bar_store, "1m", instruments=["NIFTY"])
    assert [r.instrument for r in results] == ["NIFTY"]

    with pytest.raises(ValidationError):
        service.deploy([], bar_store, "1m")
    with pytest.raises(NotFoundError):
        service.deploy([record.id, "missing"], bar_store, "1m")

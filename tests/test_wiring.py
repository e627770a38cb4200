import pytest

from market_provisioner.core.amounts import to_base_units
from market_provisioner.core.errors import WiringError
from market_provisioner.core.types import SharedInfra, TenantUnitKind
from market_provisioner.units.errors import UnitCallRejected
from market_provisioner.units.memory import InMemoryUnitFactory
from market_provisioner.wiring import (
    CoreParameters,
    InitCall,
    UnitArena,
    WiringEngine,
    WiringPlan,
    WiringPlanner,
)

SHARED = SharedInfra(
    registry="0xregistry",
    globals_viewer="0xviewer",
    payment_token="0xtoken",
    payoff_model="0xpayoff",
)

CERT_ARGS = {
    TenantUnitKind.certificate_issuer: ("L_231007_LC", "L_231007_LC"),
    TenantUnitKind.policy_issuer: ("L_231007_P", "L_231007_P"),
}


def constructed_arena(env: InMemoryUnitFactory) -> UnitArena:
    return UnitArena.construct_all(env, CERT_ARGS)


def test_construct_phase_passes_no_cross_references():
    env = InMemoryUnitFactory()

    arena = constructed_arena(env)

    assert arena.is_complete()
    assert env.count_calls("construct") == 4
    assert env.count_calls("init") == 0
    for kind in (TenantUnitKind.core, TenantUnitKind.epoch_manager):
        assert env.units[arena.address(kind)]["constructor_args"] == []
    cert = arena.address(TenantUnitKind.certificate_issuer)
    assert env.units[cert]["constructor_args"] == ["L_231007_LC", "L_231007_LC"]


def test_construct_phase_reports_each_address_as_it_is_confirmed():
    env = InMemoryUnitFactory()
    seen: list[tuple[TenantUnitKind, str]] = []
    steps: list[str] = []

    arena = UnitArena.construct_all(
        env,
        CERT_ARGS,
        on_step=steps.append,
        on_constructed=lambda kind, address: seen.append((kind, address)),
    )

    assert [k for k, _ in seen] == list(arena.handles)
    assert steps[0] == "construct MetaDefender"
    assert len(set(a for _, a in seen)) == 4


def test_wiring_inits_each_unit_once_with_peer_addresses():
    env = InMemoryUnitFactory()
    operator = env.accounts()[0]
    arena = constructed_arena(env)

    plan = WiringPlanner().plan(arena, SHARED, operator)
    WiringEngine().wire(arena, plan, sender=operator)

    units = arena.units()
    for kind in arena.handles:
        assert env.init_count(arena.address(kind)) == 1
    assert arena.is_fully_wired()

    core_args = env.init_args(units.core)
    assert core_args[:6] == [
        SHARED.payment_token,
        operator,
        units.certificate_issuer,
        units.policy_issuer,
        SHARED.payoff_model,
        units.epoch_manager,
    ]
    assert core_args[6:] == [
        to_base_units("0.10"),
        0,
        to_base_units("200"),
        to_base_units("1.1"),
        3,
    ]
    assert env.init_args(units.certificate_issuer) == [units.core]
    assert env.init_args(units.policy_issuer) == [units.core, units.epoch_manager]
    assert env.init_args(units.epoch_manager) == [
        units.core,
        units.certificate_issuer,
        units.policy_issuer,
        operator,
    ]


def test_core_parameters_are_configurable():
    params = CoreParameters(fee_rate="0.25", epoch_count=5)

    assert params.as_init_args() == (to_base_units("0.25"), 0, to_base_units("200"), to_base_units("1.1"), 5)


def test_wiring_twice_is_refused():
    env = InMemoryUnitFactory()
    arena = constructed_arena(env)
    plan = WiringPlanner().plan(arena, SHARED, env.accounts()[0])
    engine = WiringEngine()

    engine.wire(arena, plan)

    with pytest.raises(WiringError, match="already wired"):
        engine.wire(arena, plan)
    assert env.count_calls("init") == 4


def test_rejected_init_is_not_retried_in_the_same_pass():
    env = InMemoryUnitFactory(fail_on={"init:Policy"})
    arena = constructed_arena(env)
    plan = WiringPlanner().plan(arena, SHARED, env.accounts()[0])
    engine = WiringEngine()

    with pytest.raises(UnitCallRejected):
        engine.wire(arena, plan)

    env.fail_on.clear()
    with pytest.raises(WiringError):
        engine.wire(arena, plan)


def test_plan_missing_a_unit_is_rejected_before_any_init():
    env = InMemoryUnitFactory()
    arena = constructed_arena(env)
    full = WiringPlanner().plan(arena, SHARED, env.accounts()[0])
    partial = WiringPlan(calls=full.calls[:3])

    with pytest.raises(WiringError, match="misses units"):
        WiringEngine().wire(arena, partial)
    assert env.count_calls("init") == 0


def test_plan_naming_a_unit_twice_is_rejected():
    env = InMemoryUnitFactory()
    arena = constructed_arena(env)
    full = WiringPlanner().plan(arena, SHARED, env.accounts()[0])
    doubled = WiringPlan(calls=full.calls + (InitCall(TenantUnitKind.core, (), "again"),))

    with pytest.raises(WiringError, match="more than once"):
        WiringEngine().wire(arena, doubled)


def test_planning_an_incomplete_arena_fails():
    env = InMemoryUnitFactory()
    arena = UnitArena()
    arena.handles[TenantUnitKind.core] = env.construct(TenantUnitKind.core.value)

    with pytest.raises(WiringError):
        WiringPlanner().plan(arena, SHARED, env.accounts()[0])
    with pytest.raises(WiringError):
        arena.handle(TenantUnitKind.policy_issuer)


def test_wiring_logs_the_reason_of_each_init(caplog):
    env = InMemoryUnitFactory()
    arena = constructed_arena(env)
    plan = WiringPlanner().plan(arena, SHARED, env.accounts()[0])

    with caplog.at_level("INFO", logger="market_provisioner.wiring"):
        WiringEngine().wire(arena, plan)

    for call in plan.calls:
        assert call.reason in caplog.text

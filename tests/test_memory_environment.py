import pytest

from market_provisioner.units.errors import UnitCallRejected
from market_provisioner.units.memory import GENESIS_TIME, InMemoryUnitFactory


def test_construct_is_not_idempotent():
    env = InMemoryUnitFactory()

    a = env.construct("MetaDefender")
    b = env.construct("MetaDefender")

    assert a.address != b.address
    assert env.count_calls("construct", "MetaDefender") == 2


def test_addresses_are_deterministic():
    first = InMemoryUnitFactory()
    second = InMemoryUnitFactory()

    assert first.construct("Policy", "P", "P").address == second.construct("Policy", "P", "P").address
    assert first.accounts() == second.accounts()
    assert first.accounts()[0].startswith("0xa0")
    assert len(first.accounts()[0]) == 42


def test_attach_unknown_address_or_wrong_kind_is_rejected():
    env = InMemoryUnitFactory()
    unit = env.construct("Policy", "P", "P")

    with pytest.raises(UnitCallRejected):
        env.attach("Policy", "0x" + "0" * 40)
    with pytest.raises(UnitCallRejected):
        env.attach("MetaDefender", unit.address)

    assert env.attach("Policy", unit.address).address == unit.address


def test_unknown_kind_is_rejected():
    env = InMemoryUnitFactory()

    with pytest.raises(UnitCallRejected, match="unknown unit kind"):
        env.construct("Prices")


def test_second_init_is_rejected():
    env = InMemoryUnitFactory()
    unit = env.construct("LiquidityCertificate", "LC", "LC")

    unit.init("0xcore")

    with pytest.raises(UnitCallRejected, match="already initialized"):
        unit.init("0xcore")
    assert env.init_count(unit.address) == 1


def test_injected_failure_names_the_operation():
    env = InMemoryUnitFactory(fail_on={"construct:EpochManage"})

    with pytest.raises(UnitCallRejected) as excinfo:
        env.construct("EpochManage")

    assert excinfo.value.kind == "EpochManage"
    assert excinfo.value.operation == "construct"
    assert env.units == {}


def test_token_transfer_requires_balance():
    env = InMemoryUnitFactory()
    me, other = env.accounts()[:2]
    token = env.construct("TestERC20", "TQA", "TQA")

    token.call("mint", me, 100, sender=me)
    token.call("transfer", other, 40, sender=me)

    assert token.call("balanceOf", me) == 60
    assert token.call("balanceOf", other) == 40
    with pytest.raises(UnitCallRejected, match="exceeds balance"):
        token.call("transfer", me, 41, sender=other)


def test_core_rejects_transactions_before_init():
    env = InMemoryUnitFactory()
    core = env.construct("MetaDefender")

    with pytest.raises(UnitCallRejected, match="not initialized"):
        core.call("certificateProviderEntrance", 1)


def test_clock_only_moves_forward():
    env = InMemoryUnitFactory()

    assert env.current_time() == GENESIS_TIME
    assert env.advance_time(86_400) == GENESIS_TIME + 86_400
    with pytest.raises(ValueError):
        env.advance_time(-1)


def test_state_file_is_shared_between_instances(tmp_path):
    path = tmp_path / ".localchain.local.json"
    env = InMemoryUnitFactory.open(path)
    token = env.construct("TestERC20", "TQA", "TQA")
    token.call("mint", env.accounts()[0], 5)
    env.advance_time(60)

    reopened = InMemoryUnitFactory.open(path)

    attached = reopened.attach("TestERC20", token.address)
    assert attached.call("balanceOf", reopened.accounts()[0]) == 5
    assert reopened.current_time() == GENESIS_TIME + 60
    assert reopened.construct("Policy").address != token.address


def test_zero_amount_pull_without_prior_allowance():
    env = InMemoryUnitFactory()
    operator, buyer = env.accounts()[:2]
    token = env.construct("TestERC20", "TQA", "TQA")
    core = env.construct("MetaDefender")
    cert = env.construct("LiquidityCertificate", "LC", "LC")
    policy = env.construct("Policy", "P", "P")
    core.init(token.address, operator, cert.address, policy.address, "0xpayoff", "0xepoch", 10**17, 0, 0, 0, 3)

    token.call("mint", operator, 1000, sender=operator)
    token.call("approve", core.address, 1000, sender=operator)
    core.call("certificateProviderEntrance", 1000, sender=operator)

    core.call("buyPolicy", buyer, 1, 1, sender=buyer)

    assert policy.call("getPolicyInfo", 1)["premium"] == 0
    assert token.call("allowance", buyer, core.address) == 0

from typing import Sequence

import pytest

from market_provisioner.console.actions import ACTIONS, parse_amount, parse_days
from market_provisioner.console.app import OperatorConsole, open_console
from market_provisioner.console.prompts import StdinPrompter
from market_provisioner.console.session import attach_session
from market_provisioner.core.errors import ProvisionerError, ValidationFailure
from market_provisioner.core.types import MarketProfile
from market_provisioner.provisioning.orchestrator import Orchestrator
from market_provisioner.registry.json_store import JsonRegistryStore
from market_provisioner.registry.memory import InMemoryRegistryStore
from market_provisioner.units.memory import GENESIS_TIME, InMemoryUnitFactory


class ScriptedPrompter:
    """Answers prompts from a fixed script. Running out behaves like EOF on stdin."""

    def __init__(self, answers: Sequence[str]) -> None:
        self.answers = list(answers)
        self.questions: list[str] = []

    def _next(self, message: str) -> str:
        self.questions.append(message)
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)

    def ask(self, message: str) -> str:
        return self._next(message)

    def choose(self, message: str, choices: Sequence[str]) -> str:
        answer = self._next(message)
        assert answer in choices, f"{answer!r} not offered for {message!r}"
        return answer


PROFILE = MarketProfile(
    name="Pool-A",
    description="Stable_Coin_Pool",
    payment_token_symbol="USDT",
    protection_type="DePeg Safety",
    network="Arbitrum",
)


@pytest.fixture()
def provisioned():
    env = InMemoryUnitFactory()
    store = InMemoryRegistryStore()
    Orchestrator(factory=env, store=store).run("local", PROFILE)
    return env, store


def make_console(env, store, answers):
    out: list[str] = []
    prompter = ScriptedPrompter(["Pool-A", *answers])
    console = open_console(store, "local", env, prompter, clock=env, write=out.append)
    return console, out


def test_menu_lists_every_action_in_order():
    assert list(ACTIONS) == [
        "Query My Account",
        "My Address",
        "Choose Address",
        "Give Me Some Test Token",
        "Approve",
        "Transfer",
        "Provide Liquidity",
        "Liquidity Withdraw",
        "Buy Policy",
        "Settle Policy",
        "Get Rewards",
        "Claim Rewards",
        "Calculate Premium",
        "Query Global Views",
        "Query Market Addresses",
        "Time Travel",
        "Add Market",
        "Remove Market",
        "Exit",
    ]


def test_invalid_input_does_not_end_the_loop(provisioned):
    env, store = provisioned
    console, out = make_console(
        env,
        store,
        ["Provide Liquidity", "abc", "Buy Policy", "10", "-3", "My Address", "Exit"],
    )

    console.run()

    assert out[0].startswith("invalid input:")
    assert out[1].startswith("invalid input:")
    assert out[2] == env.accounts()[0]


def test_rejected_operation_does_not_end_the_loop(provisioned):
    env, store = provisioned
    console, out = make_console(env, store, ["Provide Liquidity", "10", "Exit"])

    console.run()

    assert out[0].startswith("operation rejected:")
    assert "insufficient allowance" in out[0]


def test_choose_address_switches_acting_identity(provisioned):
    env, store = provisioned
    other = env.accounts()[2]
    console, out = make_console(env, store, ["Choose Address", other, "My Address", "Exit"])

    session = console.run()

    assert session.acting_identity == other
    assert out[-1] == other


def test_mint_and_query_account(provisioned):
    env, store = provisioned
    console, out = make_console(env, store, ["Give Me Some Test Token", "Query My Account", "Exit"])

    console.run()

    assert "You have the balance of 10010000 USDTs" in out


def test_liquidity_policy_and_rewards_flow(provisioned):
    env, store = provisioned
    console, out = make_console(
        env,
        store,
        [
            "Approve",
            "Provide Liquidity", "1000",
            "Buy Policy", "100", "1",
            "Settle Policy", "1",
            "Time Travel",
            "Settle Policy", "1",
            "Get Rewards", "1",
            "Claim Rewards", "1",
            "Liquidity Withdraw", "1",
            "Liquidity Withdraw",
            "Exit",
        ],
    )

    console.run()

    assert "provided 1000 USDT of liquidity" in out
    assert "bought 100 of coverage for 1 days" in out
    rejected = [line for line in out if line.startswith("operation rejected:")]
    assert len(rejected) == 1
    assert "policy still active" in rejected[0]
    assert "settled policy 1" in out
    assert any(line.startswith("rewards is 0.0273972602") for line in out)
    assert any(line.startswith("claimed rewards of 0.0273972602") for line in out)
    assert "withdrew certificate 1" in out
    assert out[-1] == "you hold no valid certificates"


def test_calculate_premium_and_global_view(provisioned):
    env, store = provisioned
    console, out = make_console(env, store, ["Calculate Premium", "100", "1", "Query Global Views", "Exit"])

    console.run()

    assert out[0].startswith("Price: 0.0273972602")
    assert "markets: 1" in out


def test_time_travel_moves_the_clock_one_day(provisioned):
    env, store = provisioned
    console, out = make_console(env, store, ["Time Travel", "Exit"])
    before = env.current_time()

    console.run()

    assert out == [f"current time is {before}", f"current time is {before + 86_400}"]
    assert env.current_time() > GENESIS_TIME


def test_remove_and_add_market(provisioned):
    env, store = provisioned
    console, out = make_console(
        env,
        store,
        [
            "Remove Market", "Pool-A",
            "Query Market Addresses",
            "Remove Market",
            "Add Market",
            "Query Market Addresses",
            "Exit",
        ],
    )

    console.run()

    assert out[0] == "removed market Pool-A"
    assert out[1] == "no markets registered"
    assert out[2] == "no markets registered"
    assert out[3] == "registered market Pool-A"
    assert out[4].startswith("Pool-A: 0xc0")


def test_console_never_writes_the_registry(tmp_path):
    env = InMemoryUnitFactory()
    store = JsonRegistryStore(directory=tmp_path)
    Orchestrator(factory=env, store=store).run("local", PROFILE)
    before = (tmp_path / ".env.local.json").read_text(encoding="utf-8")

    console, _ = make_console(
        env,
        store,
        ["Give Me Some Test Token", "Remove Market", "Pool-A", "Add Market", "Exit"],
    )
    console.run()

    assert (tmp_path / ".env.local.json").read_text(encoding="utf-8") == before


def test_end_of_input_stops_the_loop(provisioned):
    env, store = provisioned
    console, _ = make_console(env, store, ["My Address"])

    with pytest.raises(EOFError):
        console.run()


def test_open_console_requires_recorded_markets():
    env = InMemoryUnitFactory()

    with pytest.raises(ProvisionerError, match="no markets recorded"):
        open_console(InMemoryRegistryStore(), "local", env, ScriptedPrompter([]))


def test_attach_session_rejects_unknown_market(provisioned):
    env, store = provisioned

    with pytest.raises(ProvisionerError):
        attach_session(store.load("local"), "Pool-Z", env)


def test_console_without_clock_cannot_time_travel(provisioned):
    env, store = provisioned
    session = attach_session(store.load("local"), "Pool-A", env)
    out: list[str] = []
    console = OperatorConsole(session, ScriptedPrompter([]), write=out.append)

    console.dispatch("Time Travel")

    assert out == ["this environment has no adjustable clock"]


def test_parse_amount_and_days():
    assert parse_amount("1.5") == 1_500_000_000_000_000_000
    assert parse_days("30") == 30
    for bad in ("abc", "-1", "0", "1e400", "0.0000000000000000001"):
        with pytest.raises(ValidationFailure):
            parse_amount(bad)
    for bad in ("", "0", "1.5", "-2", "x"):
        with pytest.raises(ValidationFailure):
            parse_days(bad)


def test_stdin_prompter_accepts_number_or_text_and_repeats_until_valid():
    replies = iter(["9", "nope", "2", "Beta"])
    written: list[str] = []
    prompter = StdinPrompter(read=lambda _: next(replies), write=written.append)

    assert prompter.choose("pick", ["Alpha", "Beta"]) == "Beta"
    assert prompter.choose("pick", ["Alpha", "Beta"]) == "Beta"
    assert written.count("please pick a number between 1 and 2") == 2


def test_huge_exponent_amount_is_reported_as_invalid_input(provisioned):
    env, store = provisioned
    console, out = make_console(
        env,
        store,
        ["Buy Policy", "1e1000000", "Calculate Premium", "1e-1000000", "My Address", "Exit"],
    )

    console.run()

    assert out[0].startswith("invalid input:")
    assert out[1].startswith("invalid input:")
    assert out[2] == env.accounts()[0]


def test_second_account_can_buy_coverage_with_a_zero_premium(provisioned):
    env, store = provisioned
    buyer = env.accounts()[1]
    console, out = make_console(
        env,
        store,
        [
            "Approve",
            "Provide Liquidity", "1000",
            "Choose Address", buyer,
            "Buy Policy", "0.000000000000000001", "1",
            "Exit",
        ],
    )

    console.run()

    assert "bought 0.000000000000000001 of coverage for 1 days" in out
    policy = console.session.units.policy_issuer
    assert policy.call("getPolicies", buyer) == [1]
    assert policy.call("getPolicyInfo", 1)["premium"] == 0


def test_stdin_prompter_reads_digits_as_menu_numbers_for_digit_choices():
    replies = iter(["2", "3", "1"])
    written: list[str] = []
    prompter = StdinPrompter(read=lambda _: next(replies), write=written.append)

    assert prompter.choose("Which certificate?", ["2", "3"]) == "3"
    assert prompter.choose("Which certificate?", ["2", "3"]) == "2"
    assert written.count("please pick a number between 1 and 2") == 1
    assert "  1) 2" in written

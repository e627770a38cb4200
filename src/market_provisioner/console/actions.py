"""
Console actions.

Every menu entry maps to a handler in ACTIONS. A handler reads the session,
asks the prompter for input, calls units, and returns an ActionResult with the
lines to print and an optional replacement session.

Numeric input is validated before any unit call. Invalid input raises
ValidationFailure, which the console catches at the action boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict

from market_provisioner.console.prompts import Prompter
from market_provisioner.console.session import ConsoleSession
from market_provisioner.core.amounts import from_base_units, to_base_units
from market_provisioner.core.errors import ValidationFailure
from market_provisioner.units.base import EnvironmentClock

TEST_TOKEN_GRANT = "10000"
APPROVAL_AMOUNT = "99999999"
TIME_TRAVEL_SECONDS = 86_400


@dataclass(frozen=True)
class ActionContext:
    prompter: Prompter
    clock: EnvironmentClock | None = None


@dataclass(frozen=True)
class ActionResult:
    lines: list[str] = field(default_factory=list)
    session: ConsoleSession | None = None
    exit: bool = False


ActionHandler = Callable[[ConsoleSession, ActionContext], ActionResult]


def parse_amount(text: str) -> int:
    """Parse a positive decimal token amount into base units."""
    amount = to_base_units(text)
    if amount == 0:
        raise ValidationFailure("amount must be greater than zero")
    return amount


def parse_days(text: str) -> int:
    """Parse a positive whole number of days."""
    value = text.strip()
    if not value.isdigit():
        raise ValidationFailure(f"duration must be a whole number of days: {text!r}")
    days = int(value)
    if days == 0:
        raise ValidationFailure("duration must be at least one day")
    return days


def _fmt(amount: int) -> str:
    return f"{from_base_units(int(amount)).normalize():f}"


def _valid_certificates(session: ConsoleSession) -> list[str]:
    issuer = session.units.certificate_issuer
    ids = issuer.call("getLiquidityProviders", session.acting_identity)
    out: list[str] = []
    for cert_id in ids:
        info = issuer.call("getCertificateInfo", cert_id)
        if info.get("isValid"):
            out.append(str(cert_id))
    return out


def _choose_certificate(session: ConsoleSession, ctx: ActionContext, message: str) -> str | None:
    available = _valid_certificates(session)
    if not available:
        return None
    return ctx.prompter.choose(message, available)


def query_account(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    me = session.acting_identity
    symbol = session.market.profile.payment_token_symbol
    balance = session.units.payment_token.call("balanceOf", me)
    lines = [f"You have the balance of {_fmt(balance)} {symbol}s"]

    issuer = session.units.certificate_issuer
    lines.append("Here are your certificates (including expired ones):")
    for cert_id in issuer.call("getLiquidityProviders", me):
        lines.append(str(issuer.call("getCertificateInfo", cert_id)))

    policy = session.units.policy_issuer
    lines.append("Here are your policies:")
    for policy_id in policy.call("getPolicies", me):
        lines.append(str(policy.call("getPolicyInfo", policy_id)))
    return ActionResult(lines)


def my_address(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    return ActionResult([session.acting_identity])


def choose_address(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    chosen = ctx.prompter.choose("Which address do you want to act as?", list(session.accounts))
    return ActionResult([f"acting as {chosen}"], session=replace(session, acting_identity=chosen))


def mint_test_tokens(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    me = session.acting_identity
    receipt = session.units.payment_token.call("mint", me, to_base_units(TEST_TOKEN_GRANT), sender=me)
    return ActionResult([f"minted {TEST_TOKEN_GRANT} test tokens in {receipt.tx_hash}"])


def approve(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    me = session.acting_identity
    core = session.units.core.address
    session.units.payment_token.call("approve", core, to_base_units(APPROVAL_AMOUNT), sender=me)
    return ActionResult([f"approved {core} to spend {APPROVAL_AMOUNT} tokens"])


def transfer(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    amount = parse_amount(ctx.prompter.ask("How much token do you want to transfer?"))
    to = ctx.prompter.choose("Which address do you want to send to?", list(session.accounts))
    session.units.payment_token.call("transfer", to, amount, sender=session.acting_identity)
    return ActionResult([f"transferred {_fmt(amount)} to {to}"])


def provide_liquidity(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    symbol = session.market.profile.payment_token_symbol
    amount = parse_amount(ctx.prompter.ask(f"How much {symbol} do you want to provide?"))
    session.units.core.call("certificateProviderEntrance", amount, sender=session.acting_identity)
    return ActionResult([f"provided {_fmt(amount)} {symbol} of liquidity"])


def withdraw_liquidity(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    cert_id = _choose_certificate(session, ctx, "Which certificate do you want to withdraw?")
    if cert_id is None:
        return ActionResult(["you hold no valid certificates"])
    session.units.core.call("certificateProviderExit", int(cert_id), False, sender=session.acting_identity)
    return ActionResult([f"withdrew certificate {cert_id}"])


def buy_policy(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    coverage = parse_amount(ctx.prompter.ask("How much coverage do you want to buy?"))
    days = parse_days(ctx.prompter.ask("How long do you want to buy? (in days)"))
    me = session.acting_identity
    session.units.core.call("buyPolicy", me, coverage, days, sender=me)
    return ActionResult([f"bought {_fmt(coverage)} of coverage for {days} days"])


def settle_policy(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    policy = session.units.policy_issuer
    me = session.acting_identity
    open_ids = [
        str(pid)
        for pid in policy.call("getPolicies", me)
        if not policy.call("getPolicyInfo", pid).get("isSettled")
    ]
    if not open_ids:
        return ActionResult(["you hold no unsettled policies"])
    chosen = ctx.prompter.choose("Which policy do you want to settle?", open_ids)
    session.units.core.call("settlePolicy", int(chosen), sender=me)
    return ActionResult([f"settled policy {chosen}"])


def get_rewards(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    cert_id = _choose_certificate(session, ctx, "Which certificate do you want to get rewards for?")
    if cert_id is None:
        return ActionResult(["you hold no valid certificates"])
    rewards = session.units.core.call("getRewards", int(cert_id), False)
    return ActionResult([f"rewards is {_fmt(rewards)}"])


def claim_rewards(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    cert_id = _choose_certificate(session, ctx, "Which certificate do you want to claim?")
    if cert_id is None:
        return ActionResult(["you hold no valid certificates"])
    core = session.units.core
    rewards = core.call("getRewards", int(cert_id), False)
    core.call("claimRewards", int(cert_id), sender=session.acting_identity)
    return ActionResult([f"claimed rewards of {_fmt(rewards)}"])


def calculate_premium(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    coverage = parse_amount(ctx.prompter.ask("How much coverage do you want to buy?"))
    days = parse_days(ctx.prompter.ask("How long do you want to buy? (in days)"))
    premium = session.units.globals_viewer.call("getPremium", coverage, days, session.units.core.address)
    return ActionResult([f"Price: {_fmt(premium)}"])


def query_globals(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    view: dict[str, Any] = session.units.globals_viewer.call("getGlobals")
    return ActionResult([f"{key}: {value}" for key, value in view.items()])


def query_market_addresses(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    addresses, names = session.units.registry_client.list_markets()
    if not names:
        return ActionResult(["no markets registered"])
    return ActionResult([f"{name}: {address}" for address, name in zip(addresses, names)])


def time_travel(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    if ctx.clock is None:
        return ActionResult(["this environment has no adjustable clock"])
    before = ctx.clock.current_time()
    after = ctx.clock.advance_time(TIME_TRAVEL_SECONDS)
    return ActionResult([f"current time is {before}", f"current time is {after}"])


def add_market(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    market = session.market
    session.units.registry_client.add_market(market.units, market.profile, sender=session.acting_identity)
    return ActionResult([f"registered market {market.name}"])


def remove_market(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    client = session.units.registry_client
    addresses, names = client.list_markets()
    if not names:
        return ActionResult(["no markets registered"])
    chosen = ctx.prompter.choose("Which market do you want to remove?", names)
    address = addresses[names.index(chosen)]
    client.remove_market(address, sender=session.acting_identity)
    return ActionResult([f"removed market {chosen}"])


def exit_console(session: ConsoleSession, ctx: ActionContext) -> ActionResult:
    return ActionResult(exit=True)


ACTIONS: Dict[str, ActionHandler] = {
    "Query My Account": query_account,
    "My Address": my_address,
    "Choose Address": choose_address,
    "Give Me Some Test Token": mint_test_tokens,
    "Approve": approve,
    "Transfer": transfer,
    "Provide Liquidity": provide_liquidity,
    "Liquidity Withdraw": withdraw_liquidity,
    "Buy Policy": buy_policy,
    "Settle Policy": settle_policy,
    "Get Rewards": get_rewards,
    "Claim Rewards": claim_rewards,
    "Calculate Premium": calculate_premium,
    "Query Global Views": query_globals,
    "Query Market Addresses": query_market_addresses,
    "Time Travel": time_travel,
    "Add Market": add_market,
    "Remove Market": remove_market,
    "Exit": exit_console,
}

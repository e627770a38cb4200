"""
Local simulated environment.

This factory is used for tests, local runs of the CLI, and the console.
It behaves like a tiny execution environment keyed by unit address.

Features
- Deterministic addresses, block numbers, and transaction hashes
- A unit accepts exactly one init call, a second one is rejected
- Failure injection by operation, for example "construct:Policy",
  "init:MetaDefender", or "call:MetaDefenderMarketsRegistry.addMarket"
- Optional state file so separate processes share one environment
- An adjustable clock for the console time travel action

Unit behaviour is deliberately small. It models enough of the token, the
tenant registry, and the market units for the console flows to be exercised.
It is not a model of the production units.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict

from market_provisioner.core.amounts import SCALE
from market_provisioner.core.types import SharedUnitKind, TenantUnitKind
from market_provisioner.units.base import EnvironmentClock, Receipt, UnitFactory
from market_provisioner.units.errors import UnitCallRejected

logger = logging.getLogger("market_provisioner.units")

GENESIS_TIME = 1_700_000_000
SECONDS_PER_DAY = 86_400

_ACCOUNT_PREFIX = 0xA0
_UNIT_PREFIX = 0xC0

KNOWN_KINDS = frozenset([k.value for k in SharedUnitKind] + [k.value for k in TenantUnitKind])


def _format_address(prefix: int, index: int) -> str:
    return f"0x{prefix:02x}{index:038x}"


class _Reject(Exception):
    """Internal signal from a unit method. Converted to UnitCallRejected at the boundary."""


@dataclass
class InMemoryUnit:
    """Handle to one unit of an InMemoryUnitFactory."""

    env: "InMemoryUnitFactory"
    kind: str
    address: str

    def init(self, *args: Any, sender: str | None = None) -> Receipt:
        return self.env._init(self, list(args), sender)

    def call(self, method: str, *args: Any, sender: str | None = None) -> Any:
        return self.env._call(self, method, list(args), sender)


@dataclass
class InMemoryUnitFactory(UnitFactory, EnvironmentClock):
    """
    In memory unit factory.

    account_count
    Number of acting identities. The first one is the operator.

    fail_on
    Operations that are rejected. See the module docstring for the format.

    state_path
    When set, the environment is written to this file after every confirmed
    operation. Use open to reload it.

    calls
    Log of (operation, kind, address) tuples, including attach calls.
    """

    account_count: int = 5
    fail_on: set[str] = field(default_factory=set)
    state_path: Path | None = None
    units: dict[str, dict[str, Any]] = field(default_factory=dict)
    calls: list[tuple[str, str, str]] = field(default_factory=list)
    block: int = 0
    timestamp: int = GENESIS_TIME
    next_unit: int = 1

    @classmethod
    def open(cls, path: Path, account_count: int = 5) -> "InMemoryUnitFactory":
        """Load an environment from a state file, or start a new one bound to it."""
        if not path.exists():
            return cls(account_count=account_count, state_path=path)

        data = json.loads(path.read_text(encoding="utf-8"))
        return cls(
            account_count=int(data.get("account_count", account_count)),
            state_path=path,
            units=dict(data.get("units", {})),
            block=int(data.get("block", 0)),
            timestamp=int(data.get("timestamp", GENESIS_TIME)),
            next_unit=int(data.get("next_unit", 1)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_count": self.account_count,
            "block": self.block,
            "timestamp": self.timestamp,
            "next_unit": self.next_unit,
            "units": self.units,
        }

    # UnitFactory

    def accounts(self) -> list[str]:
        return [_format_address(_ACCOUNT_PREFIX, i + 1) for i in range(self.account_count)]

    def construct(self, kind: str, *args: Any, sender: str | None = None) -> InMemoryUnit:
        self._check_injected_failure(f"construct:{kind}", kind, "construct")
        if kind not in KNOWN_KINDS:
            raise UnitCallRejected(kind=kind, operation="construct", message="unknown unit kind")

        address = _format_address(_UNIT_PREFIX, self.next_unit)
        self.next_unit += 1
        self.units[address] = {
            "kind": str(kind),
            "deployer": self._sender(sender),
            "constructor_args": list(args),
            "init_args": None,
            "init_count": 0,
            "storage": _initial_storage(kind, list(args)),
        }
        self.calls.append(("construct", str(kind), address))
        receipt = self._confirm()
        logger.debug("constructed %s at %s in block %d", kind, address, receipt.block)
        return InMemoryUnit(env=self, kind=kind, address=address)

    def attach(self, kind: str, address: str) -> InMemoryUnit:
        self._check_injected_failure(f"attach:{kind}", kind, "attach", address)
        unit = self.units.get(address)
        if unit is None or unit["kind"] != kind:
            raise UnitCallRejected(
                kind=kind,
                operation="attach",
                message="no unit of this kind at address",
                address=address,
            )
        self.calls.append(("attach", str(kind), address))
        return InMemoryUnit(env=self, kind=kind, address=address)

    # EnvironmentClock

    def current_time(self) -> int:
        return self.timestamp

    def advance_time(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("time can only move forward")
        self.timestamp += int(seconds)
        self._confirm()
        return self.timestamp

    # Inspection helpers for tests and the console

    def storage(self, address: str) -> dict[str, Any]:
        return self.units[address]["storage"]

    def init_args(self, address: str) -> list[Any] | None:
        return self.units[address]["init_args"]

    def init_count(self, address: str) -> int:
        return int(self.units[address]["init_count"])

    def count_calls(self, operation: str, kind: str | None = None) -> int:
        return sum(1 for op, k, _ in self.calls if op == operation and (kind is None or k == kind))

    # Internals

    def _sender(self, sender: str | None) -> str:
        return sender or self.accounts()[0]

    def _check_injected_failure(self, key: str, kind: str, operation: str, address: str = "") -> None:
        if key in self.fail_on:
            raise UnitCallRejected(
                kind=kind,
                operation=operation,
                message="submission rejected by environment",
                address=address,
            )

    def _confirm(self) -> Receipt:
        self.block += 1
        receipt = Receipt(tx_hash=f"0x{self.block:064x}", block=self.block)
        if self.state_path is not None:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            self.state_path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return receipt

    def _init(self, handle: InMemoryUnit, args: list[Any], sender: str | None) -> Receipt:
        self._check_injected_failure(f"init:{handle.kind}", handle.kind, "init", handle.address)
        unit = self.units[handle.address]
        if unit["init_count"]:
            raise UnitCallRejected(
                kind=handle.kind,
                operation="init",
                message="already initialized",
                address=handle.address,
            )

        initializer = _INITIALIZERS.get(handle.kind)
        if initializer is not None:
            try:
                initializer(self, unit["storage"], args)
            except _Reject as exc:
                raise UnitCallRejected(handle.kind, "init", str(exc), handle.address) from None

        unit["init_args"] = args
        unit["init_count"] = 1
        self.calls.append(("init", handle.kind, handle.address))
        return self._confirm()

    def _call(self, handle: InMemoryUnit, method: str, args: list[Any], sender: str | None) -> Any:
        kind = handle.kind
        self._check_injected_failure(f"call:{kind}.{method}", kind, method, handle.address)

        view = _VIEWS.get(kind, {}).get(method)
        tx = _TRANSACTIONS.get(kind, {}).get(method)
        if view is None and tx is None:
            raise UnitCallRejected(kind, method, "unknown method", handle.address)

        unit = self.units[handle.address]
        ctx = _CallContext(env=self, address=handle.address, sender=self._sender(sender))
        try:
            if view is not None:
                return view(ctx, unit["storage"], *args)
            if unit["init_count"] == 0 and kind in _REQUIRES_INIT:
                raise _Reject("not initialized")
            tx(ctx, unit["storage"], *args)
        except _Reject as exc:
            raise UnitCallRejected(kind, method, str(exc), handle.address) from None
        except TypeError as exc:
            raise UnitCallRejected(kind, method, f"bad arguments: {exc}", handle.address) from None

        self.calls.append(("call", f"{kind}.{method}", handle.address))
        return self._confirm()


@dataclass(frozen=True)
class _CallContext:
    env: InMemoryUnitFactory
    address: str
    sender: str

    def unit_storage(self, address: str) -> dict[str, Any]:
        unit = self.env.units.get(address)
        if unit is None:
            raise _Reject(f"no unit at {address}")
        return unit["storage"]


def _initial_storage(kind: str, args: list[Any]) -> dict[str, Any]:
    if kind == SharedUnitKind.payment_token:
        name = str(args[0]) if args else ""
        symbol = str(args[1]) if len(args) > 1 else name
        return {"name": name, "symbol": symbol, "balances": {}, "allowances": {}, "total_supply": 0}
    if kind == SharedUnitKind.registry:
        return {"markets": []}
    if kind in (TenantUnitKind.certificate_issuer, TenantUnitKind.policy_issuer):
        name = str(args[0]) if args else ""
        return {"name": name, "next_id": 1, "items": {}}
    return {}


def _amount(value: Any) -> int:
    try:
        amount = int(value)
    except (TypeError, ValueError):
        raise _Reject(f"not an integer amount: {value!r}") from None
    if amount < 0:
        raise _Reject("amount must not be negative")
    return amount


# Token


def _token_move(token: dict[str, Any], src: str, dst: str, amount: int) -> None:
    balances = token["balances"]
    if balances.get(src, 0) < amount:
        raise _Reject("transfer amount exceeds balance")
    balances[src] = balances.get(src, 0) - amount
    balances[dst] = balances.get(dst, 0) + amount


def _token_pull(token: dict[str, Any], owner: str, spender: str, amount: int) -> None:
    allowed = token["allowances"].get(owner, {}).get(spender, 0)
    if allowed < amount:
        raise _Reject("insufficient allowance")
    _token_move(token, owner, spender, amount)
    token["allowances"].setdefault(owner, {})[spender] = allowed - amount


def _token_mint(ctx: _CallContext, s: dict[str, Any], to: str, amount: Any) -> None:
    value = _amount(amount)
    s["balances"][to] = s["balances"].get(to, 0) + value
    s["total_supply"] += value


def _token_transfer(ctx: _CallContext, s: dict[str, Any], to: str, amount: Any) -> None:
    _token_move(s, ctx.sender, to, _amount(amount))


def _token_approve(ctx: _CallContext, s: dict[str, Any], spender: str, amount: Any) -> None:
    s["allowances"].setdefault(ctx.sender, {})[spender] = _amount(amount)


def _token_balance_of(ctx: _CallContext, s: dict[str, Any], owner: str) -> int:
    return int(s["balances"].get(owner, 0))


def _token_allowance(ctx: _CallContext, s: dict[str, Any], owner: str, spender: str) -> int:
    return int(s["allowances"].get(owner, {}).get(spender, 0))


# Tenant registry


def _registry_add(
    ctx: _CallContext,
    s: dict[str, Any],
    core: str,
    certificate: str,
    policy: str,
    epoch_manager: str,
    name: str,
    description: str,
    payment_token: str,
    protection_type: str,
    network: str,
) -> None:
    if any(m["core"] == core for m in s["markets"]):
        raise _Reject("market already registered")
    s["markets"].append(
        {
            "core": core,
            "certificate": certificate,
            "policy": policy,
            "epoch_manager": epoch_manager,
            "name": name,
            "description": description,
            "payment_token": payment_token,
            "protection_type": protection_type,
            "network": network,
        }
    )


def _registry_remove(ctx: _CallContext, s: dict[str, Any], core: str) -> None:
    kept = [m for m in s["markets"] if m["core"] != core]
    if len(kept) == len(s["markets"]):
        raise _Reject("market not registered")
    s["markets"] = kept


def _registry_list(ctx: _CallContext, s: dict[str, Any]) -> tuple[list[str], list[str]]:
    return [m["core"] for m in s["markets"]], [m["name"] for m in s["markets"]]


# Globals viewer


def _viewer_init(env: InMemoryUnitFactory, s: dict[str, Any], args: list[Any]) -> None:
    if len(args) != 2:
        raise _Reject("expected registry and payoff model addresses")
    s["registry"], s["payoff_model"] = str(args[0]), str(args[1])


def _viewer_globals(ctx: _CallContext, s: dict[str, Any]) -> dict[str, Any]:
    if "registry" not in s:
        raise _Reject("not initialized")
    markets = ctx.unit_storage(s["registry"])["markets"]
    return {
        "registry": s["registry"],
        "payoffModel": s["payoff_model"],
        "markets": len(markets),
        "timestamp": ctx.env.timestamp,
    }


def _premium(core: dict[str, Any], coverage: int, days: int) -> int:
    return coverage * int(core["fee_rate"]) // SCALE * days // 365


def _viewer_premium(ctx: _CallContext, s: dict[str, Any], coverage: Any, days: Any, core: str) -> int:
    core_state = ctx.unit_storage(core)
    if "fee_rate" not in core_state:
        raise _Reject("market core not initialized")
    return _premium(core_state, _amount(coverage), _amount(days))


# Market core


def _core_init(env: InMemoryUnitFactory, s: dict[str, Any], args: list[Any]) -> None:
    if len(args) != 11:
        raise _Reject(f"expected 11 init arguments, got {len(args)}")
    (
        s["payment_token"],
        s["operator"],
        s["certificate"],
        s["policy"],
        s["payoff_model"],
        s["epoch_manager"],
    ) = (str(a) for a in args[:6])
    s["fee_rate"], s["fee_floor"], s["coverage_multiplier"], s["solvency_multiplier"] = (
        int(a) for a in args[6:10]
    )
    s["epoch_count"] = int(args[10])


def _issue(store: dict[str, Any], item: dict[str, Any], id_key: str) -> int:
    item_id = int(store["next_id"])
    store["next_id"] = item_id + 1
    item[id_key] = item_id
    store["items"][str(item_id)] = item
    return item_id


def _lookup(store: dict[str, Any], item_id: Any, what: str) -> dict[str, Any]:
    item = store["items"].get(str(item_id))
    if item is None:
        raise _Reject(f"unknown {what} {item_id}")
    return item


def _core_enter(ctx: _CallContext, s: dict[str, Any], amount: Any) -> None:
    value = _amount(amount)
    if value == 0:
        raise _Reject("liquidity must be positive")
    _token_pull(ctx.unit_storage(s["payment_token"]), ctx.sender, ctx.address, value)
    _issue(
        ctx.unit_storage(s["certificate"]),
        {
            "owner": ctx.sender,
            "liquidity": value,
            "rewards": 0,
            "enteredAt": ctx.env.timestamp,
            "isValid": True,
        },
        "certificateId",
    )


def _core_exit(ctx: _CallContext, s: dict[str, Any], certificate_id: Any, is_forced: bool = False) -> None:
    cert = _lookup(ctx.unit_storage(s["certificate"]), certificate_id, "certificate")
    if cert["owner"] != ctx.sender:
        raise _Reject("caller does not own the certificate")
    if not cert["isValid"]:
        raise _Reject("certificate already withdrawn")
    _token_move(ctx.unit_storage(s["payment_token"]), ctx.address, ctx.sender, int(cert["liquidity"]))
    cert["isValid"] = False


def _core_buy(ctx: _CallContext, s: dict[str, Any], beneficiary: str, coverage: Any, days: Any) -> None:
    cover = _amount(coverage)
    duration = _amount(days)
    if cover == 0 or duration == 0:
        raise _Reject("coverage and duration must be positive")

    certificates = [c for c in ctx.unit_storage(s["certificate"])["items"].values() if c["isValid"]]
    liquidity = sum(int(c["liquidity"]) for c in certificates)
    policies = ctx.unit_storage(s["policy"])
    active = sum(int(p["coverage"]) for p in policies["items"].values() if not p["isSettled"])
    if active + cover > liquidity:
        raise _Reject("insufficient liquidity for coverage")

    premium = _premium(s, cover, duration)
    _token_pull(ctx.unit_storage(s["payment_token"]), ctx.sender, ctx.address, premium)
    for cert in certificates:
        cert["rewards"] = int(cert["rewards"]) + premium * int(cert["liquidity"]) // liquidity

    _issue(
        policies,
        {
            "beneficiary": beneficiary,
            "buyer": ctx.sender,
            "coverage": cover,
            "premium": premium,
            "duration": duration,
            "enteredAt": ctx.env.timestamp,
            "isSettled": False,
        },
        "policyId",
    )


def _core_settle(ctx: _CallContext, s: dict[str, Any], policy_id: Any) -> None:
    policy = _lookup(ctx.unit_storage(s["policy"]), policy_id, "policy")
    if policy["isSettled"]:
        raise _Reject("policy already settled")
    expires = int(policy["enteredAt"]) + int(policy["duration"]) * SECONDS_PER_DAY
    if ctx.env.timestamp < expires:
        raise _Reject("policy still active")
    policy["isSettled"] = True


def _core_rewards(ctx: _CallContext, s: dict[str, Any], certificate_id: Any, is_forced: bool = False) -> int:
    cert = _lookup(ctx.unit_storage(s["certificate"]), certificate_id, "certificate")
    return int(cert["rewards"])


def _core_claim(ctx: _CallContext, s: dict[str, Any], certificate_id: Any) -> None:
    cert = _lookup(ctx.unit_storage(s["certificate"]), certificate_id, "certificate")
    if cert["owner"] != ctx.sender:
        raise _Reject("caller does not own the certificate")
    rewards = int(cert["rewards"])
    if rewards:
        _token_move(ctx.unit_storage(s["payment_token"]), ctx.address, ctx.sender, rewards)
    cert["rewards"] = 0


# Certificate and policy issuers


def _owned_ids(s: dict[str, Any], owner_key: str, owner: str) -> list[int]:
    return [int(k) for k, v in s["items"].items() if v[owner_key] == owner]


def _certificates_of(ctx: _CallContext, s: dict[str, Any], owner: str) -> list[int]:
    return _owned_ids(s, "owner", owner)


def _certificate_info(ctx: _CallContext, s: dict[str, Any], certificate_id: Any) -> dict[str, Any]:
    return dict(_lookup(s, certificate_id, "certificate"))


def _policies_of(ctx: _CallContext, s: dict[str, Any], beneficiary: str) -> list[int]:
    return _owned_ids(s, "beneficiary", beneficiary)


def _policy_info(ctx: _CallContext, s: dict[str, Any], policy_id: Any) -> dict[str, Any]:
    return dict(_lookup(s, policy_id, "policy"))


_INITIALIZERS: Dict[str, Callable[[InMemoryUnitFactory, dict[str, Any], list[Any]], None]] = {
    SharedUnitKind.globals_viewer.value: _viewer_init,
    TenantUnitKind.core.value: _core_init,
}

_REQUIRES_INIT = frozenset([TenantUnitKind.core.value])

_TRANSACTIONS: Dict[str, Dict[str, Callable[..., None]]] = {
    SharedUnitKind.payment_token.value: {
        "mint": _token_mint,
        "transfer": _token_transfer,
        "approve": _token_approve,
    },
    SharedUnitKind.registry.value: {
        "addMarket": _registry_add,
        "removeMarket": _registry_remove,
    },
    TenantUnitKind.core.value: {
        "certificateProviderEntrance": _core_enter,
        "certificateProviderExit": _core_exit,
        "buyPolicy": _core_buy,
        "settlePolicy": _core_settle,
        "claimRewards": _core_claim,
    },
}

_VIEWS: Dict[str, Dict[str, Callable[..., Any]]] = {
    SharedUnitKind.payment_token.value: {
        "balanceOf": _token_balance_of,
        "allowance": _token_allowance,
    },
    SharedUnitKind.registry.value: {
        "getInsuranceMarkets": _registry_list,
    },
    SharedUnitKind.globals_viewer.value: {
        "getGlobals": _viewer_globals,
        "getPremium": _viewer_premium,
    },
    TenantUnitKind.core.value: {
        "getRewards": _core_rewards,
    },
    TenantUnitKind.certificate_issuer.value: {
        "getLiquidityProviders": _certificates_of,
        "getCertificateInfo": _certificate_info,
    },
    TenantUnitKind.policy_issuer.value: {
        "getPolicies": _policies_of,
        "getPolicyInfo": _policy_info,
    },
}

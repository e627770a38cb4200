"""
Wiring planner.

Purpose
This planner converts an arena of constructed units into a structured
WiringPlan that the wiring engine can execute: one init call per unit, each
carrying the addresses of the peers it references.

Reference graph
Core             -> payment token, operator, certificate issuer, policy issuer,
                    payoff model, epoch manager, plus numeric parameters
CertificateIssuer -> core
PolicyIssuer     -> core, epoch manager
EpochManager     -> core, certificate issuer, policy issuer, operator

Every reference is an address that is already known once the construct phase
completed. No init depends on another unit being initialized, so the order of
calls inside a plan carries no meaning beyond being deterministic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from market_provisioner.core.amounts import to_base_units
from market_provisioner.core.errors import WiringError
from market_provisioner.core.types import TENANT_UNIT_ORDER, SharedInfra, TenantUnitKind
from market_provisioner.wiring.arena import UnitArena


@dataclass(frozen=True)
class CoreParameters:
    """
    Numeric parameters for the market core init call.

    These are fixed per deployment profile and treated as opaque configuration.
    Decimal strings are scaled to 18 decimal base units.

    fee_rate
    Premium fee rate.

    fee_floor
    Lower bound for the fee.

    coverage_multiplier
    Coverage capacity multiplier.

    solvency_multiplier
    Solvency buffer multiplier.

    epoch_count
    Number of epochs, passed as a plain integer.
    """

    fee_rate: str = "0.10"
    fee_floor: str = "0.00"
    coverage_multiplier: str = "200"
    solvency_multiplier: str = "1.1"
    epoch_count: int = 3

    def as_init_args(self) -> tuple[int, int, int, int, int]:
        return (
            to_base_units(self.fee_rate),
            to_base_units(self.fee_floor),
            to_base_units(self.coverage_multiplier),
            to_base_units(self.solvency_multiplier),
            int(self.epoch_count),
        )


@dataclass(frozen=True)
class InitCall:
    """
    A single init call produced by the planner.

    reason is a short human readable description, logged when the init is confirmed.
    """

    kind: TenantUnitKind
    args: tuple[Any, ...]
    reason: str


@dataclass(frozen=True)
class WiringPlan:
    calls: tuple[InitCall, ...]

    def kinds(self) -> list[TenantUnitKind]:
        return [c.kind for c in self.calls]


class WiringPlanner:
    """
    A strict planner that produces a WiringPlan from a constructed arena.

    The planner does not touch the environment. It only reads addresses.
    """

    def __init__(self, parameters: CoreParameters | None = None) -> None:
        self._parameters = parameters or CoreParameters()

    def plan(self, arena: UnitArena, shared: SharedInfra, operator: str) -> WiringPlan:
        """
        Build the init calls for all four units.

        Raises WiringError when the construct phase did not complete.
        """
        if not arena.is_complete():
            raise WiringError("cannot plan wiring before every unit is constructed")

        core = arena.address(TenantUnitKind.core)
        certificate = arena.address(TenantUnitKind.certificate_issuer)
        policy = arena.address(TenantUnitKind.policy_issuer)
        epoch_manager = arena.address(TenantUnitKind.epoch_manager)

        calls = {
            TenantUnitKind.core: InitCall(
                kind=TenantUnitKind.core,
                args=(
                    shared.payment_token,
                    operator,
                    certificate,
                    policy,
                    shared.payoff_model,
                    epoch_manager,
                    *self._parameters.as_init_args(),
                ),
                reason="wire core to its peers, payment token, and payoff model",
            ),
            TenantUnitKind.certificate_issuer: InitCall(
                kind=TenantUnitKind.certificate_issuer,
                args=(core,),
                reason="wire certificate issuer to core",
            ),
            TenantUnitKind.policy_issuer: InitCall(
                kind=TenantUnitKind.policy_issuer,
                args=(core, epoch_manager),
                reason="wire policy issuer to core and epoch manager",
            ),
            TenantUnitKind.epoch_manager: InitCall(
                kind=TenantUnitKind.epoch_manager,
                args=(core, certificate, policy, operator),
                reason="wire epoch manager to core and issuers",
            ),
        }

        return WiringPlan(calls=tuple(calls[k] for k in TENANT_UNIT_ORDER))

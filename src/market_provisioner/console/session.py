"""
Console session.

The console keeps its mutable context in one immutable value. Actions receive
the current session and may return a replacement, for example after the
operator switches the acting identity.

The session is built from the registry record, which the console only reads.
"""

from __future__ import annotations

from dataclasses import dataclass

from market_provisioner.core.errors import ProvisionerError
from market_provisioner.core.types import (
    RegistryRecord,
    SharedUnitKind,
    TenantDescriptor,
    TenantUnitKind,
)
from market_provisioner.units.base import UnitFactory, UnitHandle
from market_provisioner.units.registry_client import MarketsRegistryClient


@dataclass(frozen=True)
class AttachedUnits:
    """Handles for the selected market and the shared units of its network."""

    core: UnitHandle
    certificate_issuer: UnitHandle
    policy_issuer: UnitHandle
    epoch_manager: UnitHandle
    registry: UnitHandle
    globals_viewer: UnitHandle
    payment_token: UnitHandle
    payoff_model: UnitHandle

    @property
    def registry_client(self) -> MarketsRegistryClient:
        return MarketsRegistryClient(self.registry)


@dataclass(frozen=True)
class ConsoleSession:
    """
    Console state.

    acting_identity
    Sender for every call the console submits.

    accounts
    Identities the operator can switch between.
    """

    record: RegistryRecord
    market: TenantDescriptor
    acting_identity: str
    accounts: tuple[str, ...]
    units: AttachedUnits


def attach_session(record: RegistryRecord, market_name: str, factory: UnitFactory) -> ConsoleSession:
    """Attach to every recorded unit of market_name and its shared infra."""
    market = record.find_tenant(market_name)
    if market is None:
        raise ProvisionerError(f"market {market_name!r} is not recorded on {record.network}")
    if record.shared is None:
        raise ProvisionerError(f"no shared infra recorded on {record.network}")

    shared = record.shared
    units = AttachedUnits(
        core=factory.attach(TenantUnitKind.core.value, market.units.core),
        certificate_issuer=factory.attach(
            TenantUnitKind.certificate_issuer.value, market.units.certificate_issuer
        ),
        policy_issuer=factory.attach(TenantUnitKind.policy_issuer.value, market.units.policy_issuer),
        epoch_manager=factory.attach(TenantUnitKind.epoch_manager.value, market.units.epoch_manager),
        registry=factory.attach(SharedUnitKind.registry.value, shared.registry),
        globals_viewer=factory.attach(SharedUnitKind.globals_viewer.value, shared.globals_viewer),
        payment_token=factory.attach(SharedUnitKind.payment_token.value, shared.payment_token),
        payoff_model=factory.attach(SharedUnitKind.payoff_model.value, shared.payoff_model),
    )

    accounts = tuple(factory.accounts())
    return ConsoleSession(
        record=record,
        market=market,
        acting_identity=accounts[0],
        accounts=accounts,
        units=units,
    )

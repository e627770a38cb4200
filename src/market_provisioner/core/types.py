"""
Core types.

This file defines the shared data structures used across the provisioner.

Important design choice
Records are immutable values. A provisioning pass never edits a loaded record
in place, it builds a new record and hands it to the store at the very end.

Unit kinds
Kind values are the deployable unit names used by the execution environment.
The enum member names describe the role a unit plays for the provisioner.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Dict, Optional, Tuple

from market_provisioner.core.errors import DuplicateTenant


class SharedUnitKind(StrEnum):
    """
    Units provisioned once per network and referenced by every market.

    registry
      Tenant registry. Makes a market discoverable from shared infra.

    globals_viewer
      Pricing and globals viewer. Quotes premiums across markets.

    payoff_model
      Payoff model used by every market core.

    payment_token
      Test payment token minted to the operator on first provisioning.
    """

    registry = "MetaDefenderMarketsRegistry"
    globals_viewer = "GlobalsViewer"
    payoff_model = "AmericanBinaryOptions"
    payment_token = "TestERC20"


class TenantUnitKind(StrEnum):
    """
    Units provisioned fresh for every market.

    core
      Market core. Holds liquidity and sells coverage.

    certificate_issuer
      Issues liquidity certificates to providers.

    policy_issuer
      Issues coverage policies to buyers.

    epoch_manager
      Tracks epochs for reward accrual and settlement.
    """

    core = "MetaDefender"
    certificate_issuer = "LiquidityCertificate"
    policy_issuer = "Policy"
    epoch_manager = "EpochManage"


TENANT_UNIT_ORDER: Tuple[TenantUnitKind, ...] = (
    TenantUnitKind.core,
    TenantUnitKind.certificate_issuer,
    TenantUnitKind.policy_issuer,
    TenantUnitKind.epoch_manager,
)

SHARED_UNIT_ORDER: Tuple[SharedUnitKind, ...] = (
    SharedUnitKind.registry,
    SharedUnitKind.payoff_model,
    SharedUnitKind.globals_viewer,
    SharedUnitKind.payment_token,
)


@dataclass(frozen=True)
class SharedInfra:
    """
    Addresses of the shared units for one network.

    A SharedInfra value is always complete. A network either has all four
    shared units or none of them.
    """

    registry: str
    globals_viewer: str
    payment_token: str
    payoff_model: str

    @classmethod
    def from_mapping(cls, addresses: Dict[SharedUnitKind, str]) -> "SharedInfra":
        """Build from a kind to address mapping that must cover every shared kind."""
        missing = [k.value for k in SHARED_UNIT_ORDER if not addresses.get(k)]
        if missing:
            raise ValueError(f"shared infra missing addresses for: {', '.join(missing)}")
        return cls(
            registry=addresses[SharedUnitKind.registry],
            globals_viewer=addresses[SharedUnitKind.globals_viewer],
            payment_token=addresses[SharedUnitKind.payment_token],
            payoff_model=addresses[SharedUnitKind.payoff_model],
        )

    def address_of(self, kind: SharedUnitKind) -> str:
        return getattr(self, kind.name)

    def addresses(self) -> Dict[SharedUnitKind, str]:
        return {kind: self.address_of(kind) for kind in SHARED_UNIT_ORDER}


@dataclass(frozen=True)
class TenantUnits:
    """Addresses of the four per market units."""

    core: str
    certificate_issuer: str
    policy_issuer: str
    epoch_manager: str

    @classmethod
    def from_mapping(cls, addresses: Dict[TenantUnitKind, str]) -> "TenantUnits":
        """
        Build from a kind to address mapping.

        Raises ValueError when any kind is missing so a partial market can never
        be described.
        """
        missing = [k.value for k in TENANT_UNIT_ORDER if not addresses.get(k)]
        if missing:
            raise ValueError(f"market units missing addresses for: {', '.join(missing)}")
        return cls(
            core=addresses[TenantUnitKind.core],
            certificate_issuer=addresses[TenantUnitKind.certificate_issuer],
            policy_issuer=addresses[TenantUnitKind.policy_issuer],
            epoch_manager=addresses[TenantUnitKind.epoch_manager],
        )

    def address_of(self, kind: TenantUnitKind) -> str:
        return getattr(self, kind.name)

    def addresses(self) -> Dict[TenantUnitKind, str]:
        return {kind: self.address_of(kind) for kind in TENANT_UNIT_ORDER}


@dataclass(frozen=True)
class MarketProfile:
    """
    Operator supplied market metadata.

    None of these fields are interpreted by the provisioner. They are passed to
    the tenant registry and recorded verbatim.
    """

    name: str
    description: str
    payment_token_symbol: str
    protection_type: str
    network: str


@dataclass(frozen=True)
class TenantDescriptor:
    """A provisioned market: its metadata plus its four unit addresses."""

    profile: MarketProfile
    units: TenantUnits

    @property
    def name(self) -> str:
        return self.profile.name


@dataclass(frozen=True)
class RegistryRecord:
    """
    Durable description of one network.

    shared is None until the first market is provisioned on the network.
    tenants keeps provisioning order.
    """

    network: str
    shared: Optional[SharedInfra] = None
    tenants: Tuple[TenantDescriptor, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls, network: str) -> "RegistryRecord":
        return cls(network=network)

    def find_tenant(self, name: str) -> Optional[TenantDescriptor]:
        for tenant in self.tenants:
            if tenant.name == name:
                return tenant
        return None

    def has_tenant(self, name: str) -> bool:
        return self.find_tenant(name) is not None

    def tenant_names(self) -> list[str]:
        return [t.name for t in self.tenants]

    def with_shared(self, shared: SharedInfra) -> "RegistryRecord":
        """Return a copy carrying shared infra. Recorded shared infra is never replaced."""
        if self.shared is not None and self.shared != shared:
            raise ValueError(f"shared infra already recorded for network {self.network}")
        return replace(self, shared=shared)

    def with_tenant(self, tenant: TenantDescriptor) -> "RegistryRecord":
        """Return a copy with tenant appended. Names stay unique."""
        if self.has_tenant(tenant.name):
            raise DuplicateTenant(f"market {tenant.name!r} already recorded on {self.network}")
        return replace(self, tenants=self.tenants + (tenant,))

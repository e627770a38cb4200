"""
Tenant registry client.

A thin typed wrapper around the shared MetaDefenderMarketsRegistry unit.
Both the orchestrator and the console register and list markets through it.
"""

from __future__ import annotations

from dataclasses import dataclass

from market_provisioner.core.types import MarketProfile, TenantUnits
from market_provisioner.units.base import Receipt, UnitHandle


@dataclass(frozen=True)
class MarketsRegistryClient:
    handle: UnitHandle

    def add_market(
        self,
        units: TenantUnits,
        profile: MarketProfile,
        sender: str | None = None,
    ) -> Receipt:
        return self.handle.call(
            "addMarket",
            units.core,
            units.certificate_issuer,
            units.policy_issuer,
            units.epoch_manager,
            profile.name,
            profile.description,
            profile.payment_token_symbol,
            profile.protection_type,
            profile.network,
            sender=sender,
        )

    def remove_market(self, core_address: str, sender: str | None = None) -> Receipt:
        return self.handle.call("removeMarket", core_address, sender=sender)

    def list_markets(self) -> tuple[list[str], list[str]]:
        """Return parallel lists of market core addresses and market names."""
        addresses, names = self.handle.call("getInsuranceMarkets")
        return [str(a) for a in addresses], [str(n) for n in names]

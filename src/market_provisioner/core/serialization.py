"""
Registry record codec.

Persisted layout
We write the flattened layout the operations console has always read:

{
  "network": "local",
  "metaDefenderMarketsRegistry": "0x...",
  "globalsViewer": "0x...",
  "testERC20": "0x...",
  "americanBinaryOptions": "0x...",
  "markets": [
    {
      "marketName": "Pool-A",
      "marketDescription": "...",
      "marketPaymentToken": "USDT",
      "marketProtectionType": "DePeg Safety",
      "network": "Arbitrum",
      "metaDefender": "0x...",
      "liquidityCertificate": "0x...",
      "policy": "0x...",
      "epochManage": "0x..."
    }
  ]
}

The loader also accepts a nested form with "sharedInfra" holding
registry, globalsViewer, paymentToken, payoffModel and "tenants" holding the
same market objects.

Decoding enforces the record invariants. Shared infra must be fully present or
fully absent, every market must carry all four unit addresses, and market names
must be unique.
"""

from __future__ import annotations

from typing import Any, Dict

from market_provisioner.core.errors import RegistryCorrupt
from market_provisioner.core.types import (
    MarketProfile,
    RegistryRecord,
    SharedInfra,
    SharedUnitKind,
    TenantDescriptor,
    TenantUnitKind,
    TenantUnits,
)

_FLAT_SHARED_KEYS: Dict[SharedUnitKind, str] = {
    SharedUnitKind.registry: "metaDefenderMarketsRegistry",
    SharedUnitKind.globals_viewer: "globalsViewer",
    SharedUnitKind.payment_token: "testERC20",
    SharedUnitKind.payoff_model: "americanBinaryOptions",
}

_NESTED_SHARED_KEYS: Dict[SharedUnitKind, str] = {
    SharedUnitKind.registry: "registry",
    SharedUnitKind.globals_viewer: "globalsViewer",
    SharedUnitKind.payment_token: "paymentToken",
    SharedUnitKind.payoff_model: "payoffModel",
}

_TENANT_UNIT_KEYS: Dict[TenantUnitKind, str] = {
    TenantUnitKind.core: "metaDefender",
    TenantUnitKind.certificate_issuer: "liquidityCertificate",
    TenantUnitKind.policy_issuer: "policy",
    TenantUnitKind.epoch_manager: "epochManage",
}


def tenant_to_dict(tenant: TenantDescriptor) -> dict[str, Any]:
    out: dict[str, Any] = {
        "marketName": tenant.profile.name,
        "marketDescription": tenant.profile.description,
        "marketPaymentToken": tenant.profile.payment_token_symbol,
        "marketProtectionType": tenant.profile.protection_type,
        "network": tenant.profile.network,
    }
    for kind, key in _TENANT_UNIT_KEYS.items():
        out[key] = tenant.units.address_of(kind)
    return out


def record_to_dict(record: RegistryRecord) -> dict[str, Any]:
    """Convert a record into the flattened JSON safe layout."""
    out: dict[str, Any] = {"network": record.network}
    if record.shared is not None:
        for kind, key in _FLAT_SHARED_KEYS.items():
            out[key] = record.shared.address_of(kind)
    out["markets"] = [tenant_to_dict(t) for t in record.tenants]
    return out


def _shared_from_dict(obj: dict[str, Any]) -> SharedInfra | None:
    nested = obj.get("sharedInfra")
    if nested is not None:
        if not isinstance(nested, dict):
            raise RegistryCorrupt("sharedInfra must be an object")
        source, keys = nested, _NESTED_SHARED_KEYS
    else:
        source, keys = obj, _FLAT_SHARED_KEYS

    found = {kind: str(source[key]) for kind, key in keys.items() if source.get(key)}
    if not found:
        return None
    if len(found) != len(keys):
        missing = sorted(keys[k] for k in keys if k not in found)
        raise RegistryCorrupt(f"shared infra is partially recorded, missing: {', '.join(missing)}")
    return SharedInfra.from_mapping(found)


def tenant_from_dict(obj: dict[str, Any]) -> TenantDescriptor:
    """Convert a market object into a TenantDescriptor."""
    name = str(obj.get("marketName", "") or "")
    if not name:
        raise RegistryCorrupt("market entry without marketName")

    profile = MarketProfile(
        name=name,
        description=str(obj.get("marketDescription", "")),
        payment_token_symbol=str(obj.get("marketPaymentToken", "")),
        protection_type=str(obj.get("marketProtectionType", "")),
        network=str(obj.get("network", "")),
    )

    addresses = {kind: str(obj.get(key, "") or "") for kind, key in _TENANT_UNIT_KEYS.items()}
    try:
        units = TenantUnits.from_mapping(addresses)
    except ValueError as exc:
        raise RegistryCorrupt(f"market {name!r} is partially recorded: {exc}") from exc

    return TenantDescriptor(profile=profile, units=units)


def record_from_dict(obj: Any, network: str) -> RegistryRecord:
    """
    Convert a decoded JSON payload into a RegistryRecord.

    network is the identifier the caller asked for. A payload recorded for a
    different network is rejected rather than merged.
    """
    if not isinstance(obj, dict):
        raise RegistryCorrupt("registry record must be a JSON object")

    recorded_network = obj.get("network")
    if recorded_network and str(recorded_network) != network:
        raise RegistryCorrupt(
            f"registry record belongs to network {recorded_network!r}, expected {network!r}"
        )

    raw_tenants = obj.get("markets", obj.get("tenants", []))
    if raw_tenants is None:
        raw_tenants = []
    if not isinstance(raw_tenants, list):
        raise RegistryCorrupt("markets must be a list")

    record = RegistryRecord(network=network, shared=_shared_from_dict(obj))
    for raw in raw_tenants:
        if not isinstance(raw, dict):
            raise RegistryCorrupt("market entries must be objects")
        tenant = tenant_from_dict(raw)
        if record.has_tenant(tenant.name):
            raise RegistryCorrupt(f"market {tenant.name!r} is recorded twice")
        record = record.with_tenant(tenant)

    if record.tenants and record.shared is None:
        raise RegistryCorrupt("markets are recorded but shared infra is missing")

    return record

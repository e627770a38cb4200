"""
Provisioning stages.

start
Registry record loaded, guard passed.

shared_infra_resolved
Shared units attached, or constructed and initialized.

tenant_constructed
All four per market units have addresses.

tenant_wired
Every per market unit received its single init call.

tenant_registered
The shared tenant registry knows the market.

persisted
The registry record with the new market has been written. Terminal.
"""

from __future__ import annotations

from enum import StrEnum


class ProvisioningStage(StrEnum):
    start = "start"
    shared_infra_resolved = "shared_infra_resolved"
    tenant_constructed = "tenant_constructed"
    tenant_wired = "tenant_wired"
    tenant_registered = "tenant_registered"
    persisted = "persisted"


class ProvisionOutcome(StrEnum):
    provisioned = "provisioned"
    already_provisioned = "already_provisioned"


PROVISIONING_SEQUENCE: tuple[ProvisioningStage, ...] = tuple(ProvisioningStage)


def advance_stage(current: ProvisioningStage, target: ProvisioningStage) -> ProvisioningStage:
    """Move to target, which must be the stage directly after current."""
    idx = PROVISIONING_SEQUENCE.index(current)
    if idx + 1 >= len(PROVISIONING_SEQUENCE) or PROVISIONING_SEQUENCE[idx + 1] != target:
        raise ValueError(f"invalid stage transition {current} -> {target}")
    return target

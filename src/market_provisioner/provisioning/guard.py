"""
Provisioning guard.

Purpose
Decide, before a single unit is constructed, whether a pass may run.

Checks run strictly before any construct call:
1) the profile names a market
2) the market is not already recorded for the network
3) no earlier pass crashed without an operator reviewing it

A crashed pass may have constructed shared infra that no record mentions.
Proceeding would construct it a second time, so it blocks by default.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from market_provisioner.core.types import MarketProfile, RegistryRecord
from market_provisioner.provisioning.journal import UnresolvedPassReport


class GuardVerdict(StrEnum):
    proceed = "proceed"
    already_provisioned = "already_provisioned"
    blocked = "blocked"
    invalid = "invalid"


@dataclass(frozen=True)
class GuardDecision:
    """
    Guard decision.

    verdict
    What the orchestrator must do.

    reasons
    Human readable reasons suitable for logs and failure reports.

    orphaned
    Units constructed by unresolved passes, kind to address.
    """

    verdict: GuardVerdict
    reasons: list[str]
    orphaned: dict[str, str]


@dataclass(frozen=True)
class GuardConfig:
    """
    Guard configuration.

    block_on_unresolved_pass
    When True, an unacknowledged crashed pass blocks provisioning.
    """

    block_on_unresolved_pass: bool = True


class ProvisioningGuard:
    """Decide whether a provisioning pass may start."""

    def __init__(self, config: GuardConfig | None = None) -> None:
        self._config = config or GuardConfig()

    def decide(
        self,
        record: RegistryRecord,
        profile: MarketProfile,
        unresolved: list[UnresolvedPassReport] | None = None,
    ) -> GuardDecision:
        if not profile.name.strip():
            return GuardDecision(GuardVerdict.invalid, ["market name must not be empty"], {})

        if record.has_tenant(profile.name):
            return GuardDecision(
                GuardVerdict.already_provisioned,
                [f"market {profile.name!r} already exists on {record.network}"],
                {},
            )

        reports = unresolved or []
        if reports and self._config.block_on_unresolved_pass:
            reasons: list[str] = []
            orphaned: dict[str, str] = {}
            for rep in reports:
                reasons.append(
                    f"pass {rep.pass_id} for market {rep.market!r} stopped after stage "
                    f"{rep.last_stage} without completing"
                )
                for kind, address in rep.constructed.items():
                    orphaned[f"{rep.pass_id[:8]}:{kind}"] = address
            reasons.append("review the orphaned units, then acknowledge the crashed pass")
            return GuardDecision(GuardVerdict.blocked, reasons, orphaned)

        return GuardDecision(GuardVerdict.proceed, [], {})

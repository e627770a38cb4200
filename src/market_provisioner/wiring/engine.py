"""
Wiring engine.

Executes a WiringPlan against an arena: exactly one init call per unit.

Rules
1) the plan must name every per market kind exactly once
2) a unit is marked wired before its init is dispatched, so a retry inside the
   same pass is refused even if the first attempt was rejected
3) a rejected init propagates, nothing is retried
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Callable

from market_provisioner.core.errors import WiringError
from market_provisioner.core.types import TENANT_UNIT_ORDER, TenantUnitKind
from market_provisioner.units.base import Receipt
from market_provisioner.wiring.arena import UnitArena
from market_provisioner.wiring.planner import WiringPlan

logger = logging.getLogger("market_provisioner.wiring")


@dataclass(frozen=True)
class WiringResult:
    receipts: dict[TenantUnitKind, Receipt]


class WiringEngine:
    """Dispatch init calls for a constructed arena."""

    def validate(self, plan: WiringPlan) -> None:
        """Reject plans that miss a kind or name one twice, before any call is made."""
        counts = Counter(plan.kinds())
        duplicated = sorted(k.value for k, n in counts.items() if n > 1)
        if duplicated:
            raise WiringError(f"wiring plan initializes units more than once: {', '.join(duplicated)}")

        missing = [k.value for k in TENANT_UNIT_ORDER if k not in counts]
        if missing:
            raise WiringError(f"wiring plan misses units: {', '.join(missing)}")

    def wire(
        self,
        arena: UnitArena,
        plan: WiringPlan,
        sender: str | None = None,
        on_step: Callable[[str], None] | None = None,
    ) -> WiringResult:
        """
        Wire phase.

        Requires a complete arena. Returns one receipt per kind.
        on_step is called with a step name before each init.
        """
        if not arena.is_complete():
            raise WiringError("wire phase started before construct phase completed")
        self.validate(plan)

        receipts: dict[TenantUnitKind, Receipt] = {}
        for call in plan.calls:
            if on_step is not None:
                on_step(f"init {call.kind.value}")
            handle = arena.handle(call.kind)
            arena.mark_wired(call.kind)
            receipts[call.kind] = handle.init(*call.args, sender=sender)
            logger.info("successfully init the %s unit at %s: %s", call.kind.value, handle.address, call.reason)

        return WiringResult(receipts=receipts)

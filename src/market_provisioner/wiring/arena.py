"""
Unit arena.

Purpose
The four per market units reference each other in a cycle, so no unit can be
given its peers at construction time. The arena separates identity allocation
from reference resolution:

1) construct every unit with no cross references, which yields addresses
2) only then wire each unit with the already known addresses of its peers

The arena owns phase 1 and the wired flags used by phase 2.
It is fully populated before any init call is dispatched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Mapping, Sequence

from market_provisioner.core.errors import WiringError
from market_provisioner.core.types import TENANT_UNIT_ORDER, TenantUnitKind, TenantUnits
from market_provisioner.units.base import UnitFactory, UnitHandle

logger = logging.getLogger("market_provisioner.wiring")


@dataclass
class UnitArena:
    """
    Handles of freshly constructed per market units keyed by kind.

    handles
    Populated by construct_all, in TENANT_UNIT_ORDER.

    wired
    Kinds whose init call has been dispatched in this pass.
    """

    handles: Dict[TenantUnitKind, UnitHandle] = field(default_factory=dict)
    wired: set[TenantUnitKind] = field(default_factory=set)

    @classmethod
    def construct_all(
        cls,
        factory: UnitFactory,
        constructor_args: Mapping[TenantUnitKind, Sequence[Any]],
        sender: str | None = None,
        on_step: Callable[[str], None] | None = None,
        on_constructed: Callable[[TenantUnitKind, str], None] | None = None,
        order: Iterable[TenantUnitKind] = TENANT_UNIT_ORDER,
    ) -> "UnitArena":
        """
        Construct phase.

        Every kind is constructed with its constructor arguments only.
        on_step is called with a step name before each construct.
        on_constructed is called after each confirmed construct so callers can
        journal addresses before the next call can fail.

        A construct failure propagates. Units constructed before it stay in the
        environment and are reported by the caller.
        """
        arena = cls()
        for kind in order:
            if kind in arena.handles:
                raise WiringError(f"{kind.value} constructed twice in one pass")
            args = tuple(constructor_args.get(kind, ()))
            if on_step is not None:
                on_step(f"construct {kind.value}")
            handle = factory.construct(kind.value, *args, sender=sender)
            arena.handles[kind] = handle
            logger.info("successfully deployed %s: %s", kind.value, handle.address)
            if on_constructed is not None:
                on_constructed(kind, handle.address)

        missing = [k.value for k in TENANT_UNIT_ORDER if k not in arena.handles]
        if missing:
            raise WiringError(f"construct phase incomplete, missing: {', '.join(missing)}")
        return arena

    def is_complete(self) -> bool:
        return all(k in self.handles for k in TENANT_UNIT_ORDER)

    def handle(self, kind: TenantUnitKind) -> UnitHandle:
        try:
            return self.handles[kind]
        except KeyError:
            raise WiringError(f"{kind.value} has not been constructed") from None

    def address(self, kind: TenantUnitKind) -> str:
        return self.handle(kind).address

    def units(self) -> TenantUnits:
        """Addresses of all four units. Fails unless the construct phase completed."""
        return TenantUnits.from_mapping({k: h.address for k, h in self.handles.items()})

    def mark_wired(self, kind: TenantUnitKind) -> None:
        """Record that kind is being wired. A second call for the same kind is a programmer error."""
        if kind in self.wired:
            raise WiringError(f"{kind.value} at {self.address(kind)} is already wired")
        self.wired.add(kind)

    def is_fully_wired(self) -> bool:
        return all(k in self.wired for k in TENANT_UNIT_ORDER)

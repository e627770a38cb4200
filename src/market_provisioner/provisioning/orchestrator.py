"""
Provisioning orchestrator.

This orchestrator coordinates one provisioning pass:
guard, shared infra resolution, construct phase, wire phase, market
registration, and persistence of the registry record.

Stage machine
start -> shared_infra_resolved -> tenant_constructed -> tenant_wired
      -> tenant_registered -> persisted

Failure semantics
Any rejected factory call aborts the pass. The registry record is not written
and the failure carries every address the pass constructed, because those
units now exist in the environment and nothing records them. Nothing is
retried: retrying after partial completion constructs units twice.

Single writer
The registry record for a network is loaded once, changed in memory as
immutable values, and written once. There is no locking. Running two passes
for the same network at the same time is unsupported and can break name
uniqueness and shared infra uniqueness.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict

from market_provisioner.core.amounts import to_base_units
from market_provisioner.core.errors import (
    FactoryFailure,
    InvalidProfile,
    PersistenceFailure,
    ProvisioningFailed,
    RegistrationFailure,
    UnresolvedPass,
    WiringError,
)
from market_provisioner.core.types import (
    SHARED_UNIT_ORDER,
    MarketProfile,
    RegistryRecord,
    SharedInfra,
    SharedUnitKind,
    TenantDescriptor,
    TenantUnitKind,
)
from market_provisioner.provisioning.guard import GuardVerdict, ProvisioningGuard
from market_provisioner.provisioning.journal import ProvisioningJournal
from market_provisioner.provisioning.stages import ProvisioningStage, ProvisionOutcome, advance_stage
from market_provisioner.registry.base import RegistryStore
from market_provisioner.units.base import UnitFactory, UnitHandle
from market_provisioner.units.errors import UnitCallRejected
from market_provisioner.units.registry_client import MarketsRegistryClient
from market_provisioner.wiring import UnitArena, WiringEngine, WiringPlanner

logger = logging.getLogger("market_provisioner.orchestrator")

REGISTER_STEP = "register market with tenant registry"


@dataclass(frozen=True)
class SharedInfraConfig:
    """
    Shared infra configuration, used only when a network has none yet.

    token_name, token_symbol
    Constructor arguments of the test payment token.

    initial_supply
    Decimal amount minted to the operator right after construction.
    """

    token_name: str = "TQA"
    token_symbol: str = "TQA"
    initial_supply: str = "10000000"


@dataclass(frozen=True)
class TenantUnitConfig:
    """Constructor arguments of the per market units. Cross references are never passed here."""

    certificate_name: str = "L_231007_LC"
    certificate_symbol: str = "L_231007_LC"
    policy_name: str = "L_231007_P"
    policy_symbol: str = "L_231007_P"

    def constructor_args(self) -> dict[TenantUnitKind, tuple[Any, ...]]:
        return {
            TenantUnitKind.core: (),
            TenantUnitKind.certificate_issuer: (self.certificate_name, self.certificate_symbol),
            TenantUnitKind.policy_issuer: (self.policy_name, self.policy_symbol),
            TenantUnitKind.epoch_manager: (),
        }


@dataclass(frozen=True)
class ProvisionResult:
    """
    Result of a provisioning pass.

    record
    The registry record after the pass. Unchanged for already_provisioned.

    stage
    The last stage reached. provision stops at tenant_registered, run at persisted.

    shared_created
    True when this pass constructed the shared infra.

    constructed
    Unit kind to address for every unit this pass constructed.
    """

    outcome: ProvisionOutcome
    record: RegistryRecord
    stage: ProvisioningStage
    tenant: TenantDescriptor | None = None
    shared_created: bool = False
    constructed: dict[str, str] = field(default_factory=dict)
    pass_id: str = ""


@dataclass
class _PassProgress:
    """Mutable bookkeeping for one pass. Never escapes the orchestrator."""

    market: str
    journal: ProvisioningJournal | None
    pass_id: str = ""
    stage: ProvisioningStage = ProvisioningStage.start
    step: str = "start"
    constructed: Dict[str, str] = field(default_factory=dict)

    def begin(self) -> None:
        if self.journal is not None:
            self.pass_id = self.journal.start_pass(self.market)

    def set_step(self, step: str) -> None:
        self.step = step

    def unit_constructed(self, kind: str, address: str) -> None:
        self.constructed[kind] = address
        if self.journal is not None:
            self.journal.log(
                {
                    "event": "unit_constructed",
                    "pass_id": self.pass_id,
                    "market": self.market,
                    "kind": kind,
                    "address": address,
                }
            )

    def advance(self, target: ProvisioningStage) -> None:
        self.stage = advance_stage(self.stage, target)
        logger.info("market %s reached stage %s", self.market, target.value)
        if self.journal is not None:
            self.journal.log(
                {
                    "event": "stage_reached",
                    "pass_id": self.pass_id,
                    "market": self.market,
                    "stage": target.value,
                }
            )

    def finish(self, outcome: ProvisionOutcome) -> None:
        if self.journal is not None:
            self.journal.log(
                {
                    "event": "pass_succeeded",
                    "pass_id": self.pass_id,
                    "market": self.market,
                    "outcome": outcome.value,
                    "constructed": self.constructed,
                }
            )

    def fail(self, error: ProvisioningFailed | WiringError) -> None:
        if self.journal is not None:
            self.journal.log(
                {
                    "event": "pass_failed",
                    "pass_id": self.pass_id,
                    "market": self.market,
                    "stage": self.stage.value,
                    "step": self.step,
                    "error": str(error),
                    "constructed": self.constructed,
                }
            )


class Orchestrator:
    """
    Provisioning orchestrator.

    factory
    Constructs and attaches units.

    store
    Registry store. Only run uses it.

    planner, wiring
    Construct then wire protocol for the per market units.

    guard
    Decides whether a pass may start.

    journal
    Optional pass journal used for crashed pass detection.

    operator
    Acting identity. Defaults to the first factory account.
    """

    def __init__(
        self,
        factory: UnitFactory,
        store: RegistryStore | None = None,
        planner: WiringPlanner | None = None,
        wiring: WiringEngine | None = None,
        guard: ProvisioningGuard | None = None,
        journal: ProvisioningJournal | None = None,
        shared_config: SharedInfraConfig | None = None,
        unit_config: TenantUnitConfig | None = None,
        operator: str | None = None,
    ) -> None:
        self._factory = factory
        self._store = store
        self._planner = planner or WiringPlanner()
        self._wiring = wiring or WiringEngine()
        self._guard = guard or ProvisioningGuard()
        self._journal = journal
        self._shared_config = shared_config or SharedInfraConfig()
        self._unit_config = unit_config or TenantUnitConfig()
        self._operator = operator

    @property
    def operator(self) -> str:
        return self._operator or self._factory.accounts()[0]

    def run(self, network: str, profile: MarketProfile) -> ProvisionResult:
        """
        Execute one full pass against the store.

        Steps
        1) load the record for network
        2) provision a new record value
        3) save it, as the final action
        """
        if self._store is None:
            raise ValueError("run requires a registry store")

        record = self._store.load(network)
        result, progress = self._provision(record, profile)
        if result.outcome == ProvisionOutcome.already_provisioned:
            return result

        progress.step = "save registry record"
        try:
            self._store.save(result.record)
        except OSError as exc:
            failure = PersistenceFailure(
                f"market {profile.name!r} is live but the registry record could not be written: {exc}",
                stage=progress.stage.value,
                step=progress.step,
                addresses=self._known_addresses(result),
            )
            progress.fail(failure)
            logger.error("%s", failure.describe())
            raise failure from exc

        try:
            progress.advance(ProvisioningStage.persisted)
            progress.finish(ProvisionOutcome.provisioned)
        except OSError as exc:
            # the record is already written, the pass itself succeeded
            logger.warning(
                "registry record for market %s was written but the journal could not be updated, "
                "pass %s will be reported as crashed until acknowledged: %s",
                profile.name,
                progress.pass_id,
                exc,
            )
        logger.info("successfully provisioned market %s on %s", profile.name, network)
        return replace(result, stage=ProvisioningStage.persisted)

    def provision(self, record: RegistryRecord, profile: MarketProfile) -> ProvisionResult:
        """
        Run a pass up to tenant_registered and return the new record value.

        The record passed in is not modified and nothing is persisted.
        The journal pass stays open until run persists the record, so calling
        this alone and discarding the result is seen as a crashed pass.
        """
        result, _ = self._provision(record, profile)
        return result

    def _provision(
        self,
        record: RegistryRecord,
        profile: MarketProfile,
    ) -> tuple[ProvisionResult, _PassProgress]:
        progress = _PassProgress(market=profile.name, journal=self._journal)

        unresolved = self._journal.unresolved_passes() if self._journal is not None else []
        decision = self._guard.decide(record, profile, unresolved)

        if decision.verdict == GuardVerdict.invalid:
            raise InvalidProfile("; ".join(decision.reasons))

        if decision.verdict == GuardVerdict.blocked:
            failure = UnresolvedPass(
                "an earlier provisioning pass did not complete: " + "; ".join(decision.reasons),
                stage=ProvisioningStage.start.value,
                step="guard",
                addresses=decision.orphaned,
            )
            logger.error("%s", failure.describe())
            raise failure

        if decision.verdict == GuardVerdict.already_provisioned:
            logger.info("market already exists: %s", profile.name)
            if self._journal is not None:
                self._journal.log(
                    {
                        "event": "pass_succeeded",
                        "pass_id": "",
                        "market": profile.name,
                        "outcome": ProvisionOutcome.already_provisioned.value,
                    }
                )
            result = ProvisionResult(
                outcome=ProvisionOutcome.already_provisioned,
                record=record,
                stage=ProvisioningStage.start,
                tenant=record.find_tenant(profile.name),
            )
            return result, progress

        progress.begin()
        logger.info("provisioning market %s on network %s", profile.name, record.network)

        try:
            shared, shared_handles, shared_created = self._resolve_shared(record, progress)
            progress.advance(ProvisioningStage.shared_infra_resolved)

            arena = self._construct_tenant(progress)
            progress.advance(ProvisioningStage.tenant_constructed)

            self._wire_tenant(arena, shared, progress)
            progress.advance(ProvisioningStage.tenant_wired)

            units = arena.units()
            progress.step = REGISTER_STEP
            logger.info("registry in process for market %s", profile.name)
            registry = MarketsRegistryClient(shared_handles[SharedUnitKind.registry])
            registry.add_market(units, profile, sender=self.operator)
            progress.advance(ProvisioningStage.tenant_registered)

        except UnitCallRejected as exc:
            failure_cls = RegistrationFailure if progress.step == REGISTER_STEP else FactoryFailure
            failure = failure_cls(
                str(exc),
                stage=progress.stage.value,
                step=progress.step,
                addresses=progress.constructed,
            )
            progress.fail(failure)
            logger.error("%s", failure.describe())
            raise failure from exc
        except WiringError as exc:
            progress.fail(exc)
            logger.error("wiring protocol violated at step %s: %s", progress.step, exc)
            raise

        tenant = TenantDescriptor(profile=profile, units=units)
        new_record = record.with_shared(shared) if shared_created else record
        new_record = new_record.with_tenant(tenant)

        result = ProvisionResult(
            outcome=ProvisionOutcome.provisioned,
            record=new_record,
            stage=progress.stage,
            tenant=tenant,
            shared_created=shared_created,
            constructed=dict(progress.constructed),
            pass_id=progress.pass_id,
        )
        return result, progress

    def _resolve_shared(
        self,
        record: RegistryRecord,
        progress: _PassProgress,
    ) -> tuple[SharedInfra, dict[SharedUnitKind, UnitHandle], bool]:
        if record.shared is not None:
            handles: dict[SharedUnitKind, UnitHandle] = {}
            for kind in SHARED_UNIT_ORDER:
                progress.step = f"attach {kind.value}"
                handles[kind] = self._factory.attach(kind.value, record.shared.address_of(kind))
            logger.info("reusing shared infra on network %s", record.network)
            return record.shared, handles, False

        cfg = self._shared_config
        handles = {}
        for kind in SHARED_UNIT_ORDER:
            args: tuple[Any, ...] = ()
            if kind == SharedUnitKind.payment_token:
                args = (cfg.token_name, cfg.token_symbol)
            progress.step = f"construct {kind.value}"
            handle = self._factory.construct(kind.value, *args, sender=self.operator)
            handles[kind] = handle
            progress.unit_constructed(kind.value, handle.address)
            logger.info("successfully deployed %s: %s", kind.value, handle.address)

        shared = SharedInfra.from_mapping({k: h.address for k, h in handles.items()})

        progress.step = f"init {SharedUnitKind.globals_viewer.value}"
        handles[SharedUnitKind.globals_viewer].init(shared.registry, shared.payoff_model, sender=self.operator)
        logger.info("successfully init the GlobalsViewer unit")

        progress.step = "mint initial payment token supply"
        handles[SharedUnitKind.payment_token].call(
            "mint",
            self.operator,
            to_base_units(cfg.initial_supply),
            sender=self.operator,
        )
        logger.info("minted %s %s to operator %s", cfg.initial_supply, cfg.token_symbol, self.operator)

        return shared, handles, True

    def _construct_tenant(self, progress: _PassProgress) -> UnitArena:
        def on_constructed(kind: TenantUnitKind, address: str) -> None:
            progress.unit_constructed(kind.value, address)

        return UnitArena.construct_all(
            self._factory,
            self._unit_config.constructor_args(),
            sender=self.operator,
            on_step=progress.set_step,
            on_constructed=on_constructed,
        )

    def _wire_tenant(self, arena: UnitArena, shared: SharedInfra, progress: _PassProgress) -> None:
        progress.set_step("plan wiring")
        plan = self._planner.plan(arena, shared, self.operator)
        self._wiring.wire(arena, plan, sender=self.operator, on_step=progress.set_step)

    def _known_addresses(self, result: ProvisionResult) -> dict[str, str]:
        addresses: dict[str, str] = {}
        if result.record.shared is not None:
            addresses.update({k.value: a for k, a in result.record.shared.addresses().items()})
        if result.tenant is not None:
            addresses.update({k.value: a for k, a in result.tenant.units.addresses().items()})
        return addresses

"""
Provisioning runner.

Purpose
Build the store, journal, factory, and orchestrator for one network from a
deployments directory, then run one pass.

This is the composition layer of the system.
The orchestrator remains free of paths and environment configuration.

Files inside the deployments directory
.env.<network>.json           registry record
.journal.<network>.jsonl      provisioning journal
.localchain.<network>.json    local simulated environment state
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from market_provisioner.core.types import MarketProfile
from market_provisioner.provisioning.guard import GuardConfig, ProvisioningGuard
from market_provisioner.provisioning.journal import ProvisioningJournal
from market_provisioner.provisioning.orchestrator import (
    Orchestrator,
    ProvisionResult,
    SharedInfraConfig,
    TenantUnitConfig,
)
from market_provisioner.registry.json_store import JsonRegistryStore
from market_provisioner.units.base import UnitFactory
from market_provisioner.units.memory import InMemoryUnitFactory
from market_provisioner.wiring import CoreParameters, WiringPlanner

logger = logging.getLogger("market_provisioner.runner")


@dataclass(frozen=True)
class RunnerConfig:
    """
    Runner configuration.

    network
    Registry network identifier. One registry file per network.

    deployments_dir
    Directory holding registry, journal, and local environment files.

    acknowledge_crashed_pass
    Record operator review of crashed passes before running.

    account_count
    Acting identities in a new local environment.
    """

    network: str = "local"
    deployments_dir: Path = Path("deployments")
    acknowledge_crashed_pass: bool = False
    account_count: int = 5
    core_parameters: CoreParameters = field(default_factory=CoreParameters)
    shared_config: SharedInfraConfig = field(default_factory=SharedInfraConfig)
    unit_config: TenantUnitConfig = field(default_factory=TenantUnitConfig)
    guard_config: GuardConfig = field(default_factory=GuardConfig)


def local_environment_path(deployments_dir: Path, network: str) -> Path:
    return deployments_dir / f".localchain.{network}.json"


def journal_path(deployments_dir: Path, network: str) -> Path:
    return deployments_dir / f".journal.{network}.jsonl"


def open_local_environment(config: RunnerConfig) -> InMemoryUnitFactory:
    return InMemoryUnitFactory.open(
        local_environment_path(config.deployments_dir, config.network),
        account_count=config.account_count,
    )


class ProvisioningRunner:
    """
    One shot provisioning runner.

    factory defaults to the local simulated environment stored next to the
    registry files.
    """

    def __init__(self, config: RunnerConfig | None = None, factory: UnitFactory | None = None) -> None:
        self._config = config or RunnerConfig()
        self._store = JsonRegistryStore(directory=self._config.deployments_dir)
        self._journal = ProvisioningJournal(path=journal_path(self._config.deployments_dir, self._config.network))
        self._factory = factory or open_local_environment(self._config)
        self._orchestrator = Orchestrator(
            factory=self._factory,
            store=self._store,
            planner=WiringPlanner(self._config.core_parameters),
            guard=ProvisioningGuard(self._config.guard_config),
            journal=self._journal,
            shared_config=self._config.shared_config,
            unit_config=self._config.unit_config,
        )

    def run(self, profile: MarketProfile) -> ProvisionResult:
        """Execute one provisioning pass for profile."""
        if self._config.acknowledge_crashed_pass:
            for report in self._journal.unresolved_passes():
                self._journal.acknowledge(report, note="acknowledged from provisioning runner")

        logger.info("detected network %s", self._config.network)
        return self._orchestrator.run(self._config.network, profile)

"""
Registry store interfaces.

Goal
Keep the orchestrator independent of where the per network record lives.

One record per network. Records are never merged across networks.
We keep the interface narrow so it is easy to fake in tests.
"""

from __future__ import annotations

from typing import Protocol

from market_provisioner.core.types import RegistryRecord


class RegistryStore(Protocol):
    """
    Registry store interface.

    load
    Returns the persisted record for a network, or an empty record when none
    exists. Absence is never an error.

    save
    Persists the full record, replacing any prior content for its network.
    The orchestrator calls it once, as the final action of a successful pass.
    """

    def load(self, network: str) -> RegistryRecord:
        """Load the record for a network."""

    def save(self, record: RegistryRecord) -> None:
        """Persist the record for record.network."""

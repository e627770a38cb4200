"""
In memory registry store.

This store is used for tests and local simulations.
It keeps the serialized payload rather than the record object so every load
and save goes through the same codec as the file store.

Features
- Counts saves so tests can assert a pass did not write
- Can be told to fail on save to simulate a persistence failure
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from market_provisioner.core.serialization import record_from_dict, record_to_dict
from market_provisioner.core.types import RegistryRecord
from market_provisioner.registry.base import RegistryStore


@dataclass
class InMemoryRegistryStore(RegistryStore):
    """
    In memory registry store.

    fail_on_save
    When True, save raises OSError and leaves the stored payload unchanged.
    """

    fail_on_save: bool = False
    payloads: dict[str, dict[str, Any]] = field(default_factory=dict)
    save_count: int = 0

    def load(self, network: str) -> RegistryRecord:
        payload = self.payloads.get(network)
        if payload is None:
            return RegistryRecord.empty(network)
        return record_from_dict(payload, network)

    def save(self, record: RegistryRecord) -> None:
        if self.fail_on_save:
            raise OSError("simulated registry write failure")
        self.payloads[record.network] = record_to_dict(record)
        self.save_count += 1

"""
Unit factory interfaces.

Goal
Define the boundary between the provisioner and the execution environment
without binding the provisioner to a chain client or transport.

Design notes
Units are black boxes. The provisioner only relies on:
1) construct allocates a new unit with a fresh address, it is not idempotent
2) attach binds to an existing address with no side effect
3) every handle accepts exactly one init call that wires cross references

Every call blocks until the environment confirms it. A rejected submission or
a denied confirmation raises UnitCallRejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class Receipt:
    """
    Confirmation of a state changing call.

    tx_hash identifies the submission.
    block is the block that confirmed it.
    """

    tx_hash: str
    block: int


class UnitHandle(Protocol):
    """
    Handle to one deployed unit.

    kind is the deployable unit name, address its location.
    sender selects the acting identity. None means the environment default.
    """

    kind: str
    address: str

    def init(self, *args: Any, sender: str | None = None) -> Receipt:
        """Wire the unit to its peers. Valid once per unit."""

    def call(self, method: str, *args: Any, sender: str | None = None) -> Any:
        """Invoke any other operation and return its result."""


class UnitFactory(Protocol):
    """
    Create or bind unit handles.

    accounts returns the acting identities available to the operator.
    The first account is the operator that provisions markets.
    """

    def construct(self, kind: str, *args: Any, sender: str | None = None) -> UnitHandle:
        """Allocate a new unit of kind with constructor arguments."""

    def attach(self, kind: str, address: str) -> UnitHandle:
        """Bind a handle to an existing unit."""

    def accounts(self) -> list[str]:
        """Return acting identities."""


class EnvironmentClock(Protocol):
    """Clock of the execution environment, used by the console time travel action."""

    def current_time(self) -> int:
        """Return the environment timestamp in seconds."""

    def advance_time(self, seconds: int) -> int:
        """Move the clock forward and return the new timestamp."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class UnitCallRejected(Exception):
    """
    Raised when the execution environment rejects a submission or denies its confirmation.

    address is empty for construct calls that never produced a unit.
    """

    kind: str
    operation: str
    message: str
    address: str = ""

    def __str__(self) -> str:
        target = f"{self.kind}@{self.address}" if self.address else self.kind
        return f"{target} {self.operation}: {self.message}"

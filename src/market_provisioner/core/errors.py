"""
Error taxonomy.

We separate error types so callers can react correctly.
Example:
RegistryCorrupt and UnresolvedPass should block before any unit is constructed.
FactoryFailure and RegistrationFailure mean units may be orphaned on chain and
must be reconciled by a human.
PersistenceFailure means a market is live but unknown locally.
ValidationFailure only ever happens in the console and never ends the process.

Nothing in this taxonomy is retried automatically. Retrying after partial
completion would construct units twice.
"""

from __future__ import annotations

from typing import Dict, Optional


class ProvisionerError(Exception):
    """Base class for all provisioner exceptions."""


class RegistryCorrupt(ProvisionerError):
    """Raised when a persisted registry record is unreadable or violates its invariants."""


class DuplicateTenant(ProvisionerError):
    """Raised when a record would hold two markets with the same name."""


class InvalidProfile(ProvisionerError):
    """Raised when a market profile is missing required fields."""


class WiringError(ProvisionerError):
    """Raised when the wiring protocol is misused, for example a unit wired twice."""


class ValidationFailure(ProvisionerError):
    """Raised by console input parsing for non numeric or out of range values."""


class ProvisioningFailed(ProvisionerError):
    """
    Base class for failures of a provisioning pass.

    stage
    The last stage the pass completed before failing.

    step
    The step that failed, for example "construct MetaDefender".

    addresses
    Every unit address obtained by the pass so far, keyed by unit kind.
    These units exist in the execution environment and may need manual
    reconciliation.
    """

    def __init__(
        self,
        message: str,
        stage: str,
        step: str,
        addresses: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.step = step
        self.addresses = dict(addresses or {})

    def describe(self) -> str:
        """Render the full failure context for operators."""
        lines = [
            f"{type(self).__name__}: {self.message}",
            f"  failed step: {self.step}",
            f"  last completed stage: {self.stage}",
        ]
        if self.addresses:
            lines.append("  addresses to reconcile:")
            for kind, address in self.addresses.items():
                lines.append(f"    {kind}: {address}")
        else:
            lines.append("  no units were constructed by this pass")
        return "\n".join(lines)


class FactoryFailure(ProvisioningFailed):
    """Raised when a construct, attach, or init call is rejected."""


class RegistrationFailure(ProvisioningFailed):
    """Raised when the shared tenant registry rejects the new market."""


class PersistenceFailure(ProvisioningFailed):
    """Raised when every on chain step succeeded but the registry record could not be written."""


class UnresolvedPass(ProvisioningFailed):
    """Raised when the journal shows a crashed pass the operator has not acknowledged."""

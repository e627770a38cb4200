"""
Operator console.

Runtime loop around the ACTIONS dispatch table. The console is a read only
consumer of the registry record: it attaches to recorded units and never
writes the record back.

Per action failures, rejected unit calls and invalid input, are reported and
the loop continues.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict

from market_provisioner.console.actions import ACTIONS, ActionContext, ActionHandler, ActionResult
from market_provisioner.console.prompts import Prompter
from market_provisioner.console.session import ConsoleSession, attach_session
from market_provisioner.core.errors import ProvisionerError, ValidationFailure
from market_provisioner.registry.base import RegistryStore
from market_provisioner.units.base import EnvironmentClock, UnitFactory
from market_provisioner.units.errors import UnitCallRejected

logger = logging.getLogger("market_provisioner.console")


class OperatorConsole:
    def __init__(
        self,
        session: ConsoleSession,
        prompter: Prompter,
        clock: EnvironmentClock | None = None,
        actions: Dict[str, ActionHandler] | None = None,
        write: Callable[[str], None] = print,
    ) -> None:
        self.session = session
        self._ctx = ActionContext(prompter=prompter, clock=clock)
        self._actions = actions or ACTIONS
        self._write = write

    def dispatch(self, name: str) -> ActionResult:
        handler = self._actions[name]
        try:
            result = handler(self.session, self._ctx)
        except ValidationFailure as exc:
            result = ActionResult([f"invalid input: {exc}"])
        except UnitCallRejected as exc:
            logger.warning("console action %s rejected: %s", name, exc)
            result = ActionResult([f"operation rejected: {exc}"])

        for line in result.lines:
            self._write(line)
        if result.session is not None:
            self.session = result.session
        return result

    def run(self) -> ConsoleSession:
        """Loop until the operator exits. Returns the final session."""
        while True:
            name = self._ctx.prompter.choose("What do you want to do?", list(self._actions))
            if self.dispatch(name).exit:
                return self.session


def open_console(
    store: RegistryStore,
    network: str,
    factory: UnitFactory,
    prompter: Prompter,
    clock: EnvironmentClock | None = None,
    write: Callable[[str], None] = print,
) -> OperatorConsole:
    """Load the record for network, let the operator pick a market, and attach to it."""
    record = store.load(network)
    names = record.tenant_names()
    if not names:
        raise ProvisionerError(f"no markets recorded for network {network}")

    chosen = prompter.choose("Which market do you want to choose?", names)
    session = attach_session(record, chosen, factory)
    return OperatorConsole(session, prompter, clock=clock, write=write)

"""
Provisioning journal.

JSON line log of provisioning passes for one network. Each call appends one
JSON object per line and every unit address is written as soon as its
construct call is confirmed.

Why it exists
The registry record is only written at the end of a successful pass. If the
process dies in between, units exist in the environment that no record
mentions. The journal is what the next run reads to notice that.

Events
pass_started, unit_constructed, stage_reached, pass_succeeded, pass_failed,
pass_acknowledged. A pass with pass_started but none of the last three is a
crashed pass.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger("market_provisioner.journal")

TERMINAL_EVENTS = frozenset({"pass_succeeded", "pass_failed", "pass_acknowledged"})


@dataclass(frozen=True)
class UnresolvedPassReport:
    """
    A pass that started but never reached a terminal event.

    constructed maps unit kind to address for every unit the pass constructed.
    Those units are orphaned unless a human reconciles them.
    """

    pass_id: str
    market: str
    started_unix: int
    last_stage: str
    constructed: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ProvisioningJournal:
    path: Path

    def log(self, event: dict[str, Any]) -> None:
        payload = dict(event)
        payload["ts_unix"] = int(time.time())
        line = json.dumps(payload, sort_keys=True)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    def start_pass(self, market: str) -> str:
        pass_id = uuid.uuid4().hex
        self.log({"event": "pass_started", "pass_id": pass_id, "market": market})
        return pass_id

    def events(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []

        out: list[dict[str, Any]] = []
        for lineno, line in enumerate(self.path.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                # a crash can leave the last line half written
                logger.warning("skipping unreadable journal line %d in %s", lineno, self.path)
                continue
            if isinstance(obj, dict):
                out.append(obj)
        return out

    def unresolved_passes(self) -> list[UnresolvedPassReport]:
        """Return passes without a terminal event, oldest first."""
        started: dict[str, dict[str, Any]] = {}
        constructed: dict[str, dict[str, str]] = {}
        stages: dict[str, str] = {}
        resolved: set[str] = set()

        for ev in self.events():
            pass_id = str(ev.get("pass_id", ""))
            kind = ev.get("event")
            if kind == "pass_started":
                started[pass_id] = ev
            elif kind == "unit_constructed":
                constructed.setdefault(pass_id, {})[str(ev.get("kind"))] = str(ev.get("address"))
            elif kind == "stage_reached":
                stages[pass_id] = str(ev.get("stage"))
            elif kind in TERMINAL_EVENTS:
                resolved.add(pass_id)

        return [
            UnresolvedPassReport(
                pass_id=pass_id,
                market=str(ev.get("market", "")),
                started_unix=int(ev.get("ts_unix", 0)),
                last_stage=stages.get(pass_id, "start"),
                constructed=constructed.get(pass_id, {}),
            )
            for pass_id, ev in started.items()
            if pass_id not in resolved
        ]

    def acknowledge(self, report: UnresolvedPassReport, note: str = "") -> None:
        """Mark a crashed pass as reviewed by an operator so provisioning can continue."""
        self.log(
            {
                "event": "pass_acknowledged",
                "pass_id": report.pass_id,
                "market": report.market,
                "orphaned": report.constructed,
                "note": note,
            }
        )
        logger.warning(
            "acknowledged crashed pass %s for market %s with %d orphaned units",
            report.pass_id,
            report.market,
            len(report.constructed),
        )

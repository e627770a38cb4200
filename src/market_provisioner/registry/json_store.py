"""
JSON file registry store.

Each network gets its own file inside a deployments directory:

  deployments/.env.<network>.json

Writes are atomic. We write a sibling temporary file, flush and fsync it, then
replace the target. A crash mid write leaves either the old record or the new
one, never a truncated file.

Single writer
No locking is done. Two provisioning passes for the same network at the same
time are unsupported.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from market_provisioner.core.errors import RegistryCorrupt
from market_provisioner.core.serialization import record_from_dict, record_to_dict
from market_provisioner.core.types import RegistryRecord
from market_provisioner.registry.base import RegistryStore

logger = logging.getLogger("market_provisioner.registry")


@dataclass(frozen=True)
class JsonRegistryStore(RegistryStore):
    """
    Registry store backed by one JSON file per network.

    directory is created on first save.
    """

    directory: Path

    def path_for(self, network: str) -> Path:
        if not network or "/" in network or "\\" in network:
            raise ValueError(f"invalid network identifier: {network!r}")
        return self.directory / f".env.{network}.json"

    def load(self, network: str) -> RegistryRecord:
        path = self.path_for(network)
        if not path.exists():
            logger.info("no registry record for network %s, starting empty", network)
            return RegistryRecord.empty(network)

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise RegistryCorrupt(f"registry file {path} is not valid JSON: {exc}") from exc

        record = record_from_dict(data, network)
        logger.info(
            "loaded registry record for network %s with %d markets",
            network,
            len(record.tenants),
        )
        return record

    def save(self, record: RegistryRecord) -> None:
        path = self.path_for(record.network)
        path.parent.mkdir(parents=True, exist_ok=True)

        payload = json.dumps(record_to_dict(record), indent=2) + "\n"

        fd, tmp_name = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info("saved registry record for network %s to %s", record.network, path)

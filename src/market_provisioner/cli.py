"""
Command line entry points.

provision-market
Run one provisioning pass for a market profile.

market-console
Attach to a recorded market and drive its units interactively.

Both commands work against a deployments directory that holds the registry
record, the journal, and the local simulated environment of a network.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from market_provisioner.console.app import open_console
from market_provisioner.console.prompts import StdinPrompter
from market_provisioner.core.errors import ProvisionerError, ProvisioningFailed
from market_provisioner.provisioning.profiles import DEFAULT_PROFILE, load_profile
from market_provisioner.provisioning.runner import ProvisioningRunner, RunnerConfig, open_local_environment
from market_provisioner.provisioning.stages import ProvisionOutcome
from market_provisioner.registry.json_store import JsonRegistryStore


def _common_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--network", default="local", help="Registry network identifier")
    ap.add_argument(
        "--deployments-dir",
        type=Path,
        default=Path("deployments"),
        help="Directory holding registry, journal, and local environment files",
    )
    ap.add_argument("--log-level", default="INFO", help="Logging level, for example DEBUG or WARNING")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _report(exc: Exception) -> None:
    if isinstance(exc, ProvisioningFailed):
        print(exc.describe())
    else:
        print(f"{type(exc).__name__}: {exc}")


def provision_main(argv: Sequence[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="provision-market", description="Provision one market on a network")
    _common_args(ap)
    ap.add_argument("--profile", type=Path, default=None, help="JSON market profile, defaults to the built in one")
    ap.add_argument(
        "--acknowledge-crashed-pass",
        action="store_true",
        help="Record review of crashed passes in the journal and continue",
    )
    args = ap.parse_args(argv)
    _configure_logging(args.log_level)

    config = RunnerConfig(
        network=args.network,
        deployments_dir=args.deployments_dir,
        acknowledge_crashed_pass=bool(args.acknowledge_crashed_pass),
    )

    try:
        profile = load_profile(args.profile) if args.profile is not None else DEFAULT_PROFILE
        result = ProvisioningRunner(config).run(profile)
    except ProvisionerError as exc:
        _report(exc)
        return 1
    except (ValueError, OSError) as exc:
        # bad network identifier or unreadable local environment state
        _report(exc)
        return 1

    if result.outcome == ProvisionOutcome.already_provisioned:
        print(f"market {profile.name} already exists on {args.network}, nothing to do")
    else:
        print(f"provisioned market {profile.name} on {args.network}")
        for kind, address in result.constructed.items():
            print(f"  {kind}: {address}")
    return 0


def console_main(argv: Sequence[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="market-console", description="Interactive console for a recorded market")
    _common_args(ap)
    ap.set_defaults(log_level="WARNING")
    args = ap.parse_args(argv)
    _configure_logging(args.log_level)

    config = RunnerConfig(network=args.network, deployments_dir=args.deployments_dir)
    store = JsonRegistryStore(directory=config.deployments_dir)

    try:
        environment = open_local_environment(config)
        console = open_console(store, config.network, environment, StdinPrompter(), clock=environment)
        console.run()
    except ProvisionerError as exc:
        _report(exc)
        return 1
    except (ValueError, OSError) as exc:
        _report(exc)
        return 1
    except (EOFError, KeyboardInterrupt):
        print()
    return 0

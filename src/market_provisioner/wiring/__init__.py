"""
Wiring package.

Construct then wire protocol for the per market units. Re-exported here so
callers import one place.
"""

from market_provisioner.wiring.arena import UnitArena
from market_provisioner.wiring.engine import WiringEngine, WiringResult
from market_provisioner.wiring.planner import CoreParameters, InitCall, WiringPlan, WiringPlanner

__all__ = [
    "CoreParameters",
    "InitCall",
    "UnitArena",
    "WiringEngine",
    "WiringPlan",
    "WiringPlanner",
    "WiringResult",
]

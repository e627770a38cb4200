"""
market_provisioner

This package provisions insurance markets onto a shared per network
infrastructure and records the resulting topology in a registry file.

We keep modules small and well separated:
core contains shared data structures, amounts, and errors
registry contains the per network record store
units contains the unit factory boundary and the local simulated environment
wiring contains the construct then wire protocol for per market units
provisioning contains the orchestrator, guard, journal, and runner
console contains the interactive operator console
"""

"""
Market profiles.

The CLI provisions one hard coded profile by default. A profile can also be
read from a local json file with either the registry field names or snake
case names.

Schema example
{
  "marketName": "Test_StableCoin1_Pool",
  "marketDescription": "Stable_Coin_Pool",
  "marketPaymentToken": "USDT",
  "marketProtectionType": "DePeg Safety",
  "network": "Arbitrum"
}
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from market_provisioner.core.errors import InvalidProfile
from market_provisioner.core.types import MarketProfile

DEFAULT_PROFILE = MarketProfile(
    name="Test_StableCoin1_Pool",
    description="Stable_Coin_Pool",
    payment_token_symbol="USDT",
    protection_type="DePeg Safety",
    network="Arbitrum",
)

_FIELDS = {
    "name": ("marketName", "name"),
    "description": ("marketDescription", "description"),
    "payment_token_symbol": ("marketPaymentToken", "payment_token_symbol"),
    "protection_type": ("marketProtectionType", "protection_type"),
    "network": ("network",),
}


def profile_from_dict(obj: dict[str, Any]) -> MarketProfile:
    """Convert a dict into MarketProfile. Every field is required."""
    values: dict[str, str] = {}
    for attr, keys in _FIELDS.items():
        raw = next((obj[k] for k in keys if k in obj), None)
        if raw is None or not str(raw).strip():
            raise InvalidProfile(f"profile is missing {keys[0]}")
        values[attr] = str(raw)
    return MarketProfile(**values)


def load_profile(path: Path) -> MarketProfile:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise InvalidProfile(f"cannot read profile {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise InvalidProfile(f"profile {path} must be a JSON object")
    return profile_from_dict(data)

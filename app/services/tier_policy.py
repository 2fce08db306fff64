"""
Account tier limits.

Tiers are a data table (tier name -> TierLimits) rather than branching code.
Operators can override single entries with the TIER_LIMITS environment
variable (JSON), e.g. {"PRO": {"storage_limit_bytes": 5368709120}}.
"""
import logging
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Dict, Mapping, Optional

from app.config import get_settings

logger = logging.getLogger("app.quota")

KB = 1024
MB = 1024 * KB
GB = 1024 * MB

DEFAULT_TIER = "FREE"


@dataclass(frozen=True)
class TierLimits:
    storage_limit_bytes: int
    photo_count_limit: int
    single_file_limit_bytes: int


DEFAULT_TIER_LIMITS: Dict[str, TierLimits] = {
    "FREE": TierLimits(50 * MB, 20, 10 * MB),
    "BASIC": TierLimits(200 * MB, 50, 20 * MB),
    "PRO": TierLimits(2 * GB, 100, 30 * MB),
}

TIER_DISPLAY_NAMES: Dict[str, str] = {
    "FREE": "Free",
    "BASIC": "Basic",
    "PRO": "Pro",
}


def format_bytes(n: int) -> str:
    """Human readable size: '1.50 GB', '12.00 MB', '3.25 KB', '512 bytes'."""
    if n >= GB:
        return f"{n / GB:.2f} GB"
    if n >= MB:
        return f"{n / MB:.2f} MB"
    if n >= KB:
        return f"{n / KB:.2f} KB"
    return f"{n} bytes"


def format_limit(n: int) -> str:
    """Compact limit label used in quota info: '2GB', '50MB', '512KB'."""
    if n >= GB:
        return f"{n // GB}GB"
    if n >= MB:
        return f"{n // MB}MB"
    return f"{n // KB}KB"


class TierPolicy:
    """Pure lookup of tier limits. Unknown tier names resolve to FREE."""

    def __init__(self, limits: Optional[Mapping[str, TierLimits]] = None):
        self._limits: Dict[str, TierLimits] = dict(limits or DEFAULT_TIER_LIMITS)
        if DEFAULT_TIER not in self._limits:
            self._limits[DEFAULT_TIER] = DEFAULT_TIER_LIMITS[DEFAULT_TIER]

    @classmethod
    def from_overrides(cls, overrides: Mapping[str, Mapping[str, int]]) -> "TierPolicy":
        limits = dict(DEFAULT_TIER_LIMITS)
        for raw_name, fields in (overrides or {}).items():
            name = str(raw_name).strip().upper()
            base = limits.get(name, DEFAULT_TIER_LIMITS[DEFAULT_TIER])
            known = {k: int(v) for k, v in fields.items() if k in TierLimits.__dataclass_fields__}
            unknown = set(fields) - set(known)
            if unknown:
                logger.warning(
                    "Ignoring unknown tier limit fields",
                    extra={"event": "config", "tier": name, "fields": sorted(unknown)},
                )
            limits[name] = replace(base, **known)
        return cls(limits)

    def normalize(self, tier: Optional[str]) -> str:
        if not tier:
            return DEFAULT_TIER
        name = str(tier).strip().upper()
        return name if name in self._limits else DEFAULT_TIER

    def limits_for(self, tier: Optional[str]) -> TierLimits:
        return self._limits[self.normalize(tier)]

    def display_name(self, tier: Optional[str]) -> str:
        name = self.normalize(tier)
        return TIER_DISPLAY_NAMES.get(name, name.capitalize())

    @property
    def tiers(self) -> Dict[str, TierLimits]:
        return dict(self._limits)


@lru_cache()
def get_tier_policy() -> TierPolicy:
    """Tier policy built once from settings (FastAPI dependency)."""
    return TierPolicy.from_overrides(get_settings().tier_limits)

"""Quota value objects: per-plan limits and a user's resolved limits.

Byte counts are plain Python ints (arbitrary precision); they are never
passed through float.
"""

from dataclasses import dataclass

from cloudvault.domain.enums import Plan


@dataclass(frozen=True)
class PlanLimits:
    """Storage ceiling and single-upload ceiling for one plan."""

    total_storage_bytes: int
    max_upload_bytes: int

    def __post_init__(self) -> None:
        for name in ("total_storage_bytes", "max_upload_bytes"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer byte count")
            if value < 0:
                raise ValueError(f"{name} must be non-negative")
        if self.max_upload_bytes > self.total_storage_bytes:
            raise ValueError("max_upload_bytes cannot exceed total_storage_bytes")


@dataclass(frozen=True)
class ResolvedLimits:
    """Effective limits for a user at the moment of resolution."""

    plan: Plan
    storage_limit_bytes: int
    max_upload_bytes: int

    @property
    def plan_name(self) -> str:
        return self.plan.value

"""Domain value objects and shared value types."""

from cloudvault.domain.value_objects.quota import PlanLimits, ResolvedLimits

__all__ = [
    "PlanLimits",
    "ResolvedLimits",
]

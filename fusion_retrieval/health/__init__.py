"""Source health monitoring."""

from fusion_retrieval.health.monitor import HealthMonitor, calculate_overall_status

__all__ = ["HealthMonitor", "calculate_overall_status"]

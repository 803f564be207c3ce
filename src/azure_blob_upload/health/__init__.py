"""Dependency health tracking for the readiness endpoints."""

from .dependency_status import (
    DependencyType,
    HealthStatus,
    DependencyHealth,
    DependencyHealthTracker,
    get_dependency_tracker,
    register_dependency,
    set_dependency_healthy,
    set_dependency_unhealthy,
)

__all__ = [
    "DependencyType",
    "HealthStatus",
    "DependencyHealth",
    "DependencyHealthTracker",
    "get_dependency_tracker",
    "register_dependency",
    "set_dependency_healthy",
    "set_dependency_unhealthy",
]

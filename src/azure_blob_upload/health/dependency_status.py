import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


logger = logging.getLogger(__name__)


class DependencyType(Enum):
    """Kinds of external services the application waits on."""
    STORAGE = "storage"
    CUSTOM = "custom"


class HealthStatus(Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"  # registered, outcome not known yet


@dataclass
class DependencyHealth:
    """Last known state of one dependency."""
    name: str
    dependency_type: DependencyType
    status: HealthStatus = HealthStatus.UNKNOWN
    last_checked: Optional[datetime] = None
    error_message: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "type": self.dependency_type.value,
            "status": self.status.value,
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
            "error": self.error_message,
            "metadata": self.metadata,
        }


class DependencyHealthTracker:
    """Keeps the state of every registered dependency for the health routes."""

    def __init__(self):
        self._dependencies: Dict[str, DependencyHealth] = {}

    def register_dependency(
        self,
        name: str,
        dependency_type: DependencyType,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        self._dependencies[name] = DependencyHealth(
            name=name,
            dependency_type=dependency_type,
            metadata=dict(metadata or {}),
        )
        logger.info(f"Registered dependency: {name} ({dependency_type.value})")

    def _update(
        self,
        name: str,
        status: HealthStatus,
        error_message: Optional[str],
        metadata: Optional[Dict[str, str]],
    ) -> DependencyHealth:
        if name not in self._dependencies:
            logger.debug(f"Dependency {name} not registered, registering as {DependencyType.CUSTOM.value}")
            self.register_dependency(name, DependencyType.CUSTOM)
        dep = self._dependencies[name]
        dep.status = status
        dep.last_checked = datetime.now(timezone.utc)
        dep.error_message = error_message
        if metadata:
            dep.metadata.update(metadata)
        return dep

    def set_healthy(self, name: str, metadata: Optional[Dict[str, str]] = None) -> None:
        self._update(name, HealthStatus.HEALTHY, None, metadata)
        logger.info(f"Dependency {name} marked as healthy")

    def set_unhealthy(self, name: str, error_message: str, metadata: Optional[Dict[str, str]] = None) -> None:
        self._update(name, HealthStatus.UNHEALTHY, error_message, metadata)
        logger.error(f"Dependency {name} marked as unhealthy: {error_message}")

    def get_dependency(self, name: str) -> Optional[DependencyHealth]:
        return self._dependencies.get(name)

    def get_all_dependencies(self) -> Dict[str, Dict]:
        return {name: dep.to_dict() for name, dep in self._dependencies.items()}

    def is_application_ready(self) -> bool:
        """Ready once every registered dependency reported healthy."""
        if not self._dependencies:
            return False
        return all(dep.is_healthy for dep in self._dependencies.values())

    def reset(self) -> None:
        self._dependencies.clear()


_dependency_tracker = DependencyHealthTracker()


def get_dependency_tracker() -> DependencyHealthTracker:
    return _dependency_tracker


def register_dependency(name: str, dependency_type: DependencyType, metadata: Optional[Dict[str, str]] = None) -> None:
    """Register a dependency with the global tracker."""
    _dependency_tracker.register_dependency(name, dependency_type, metadata)


def set_dependency_healthy(name: str, metadata: Optional[Dict[str, str]] = None) -> None:
    _dependency_tracker.set_healthy(name, metadata)


def set_dependency_unhealthy(name: str, error_message: str, metadata: Optional[Dict[str, str]] = None) -> None:
    _dependency_tracker.set_unhealthy(name, error_message, metadata)

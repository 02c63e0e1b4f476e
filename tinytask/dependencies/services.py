"""
Service container for dependency injection.
Centralizes service initialization and provides access to all services.
"""
import logging
from typing import Optional

from tinytask import config
from tinytask.database import TinyTaskDatabase
from tinytask.services import TaskService, QueueService, HandoffService

logger = logging.getLogger(__name__)

# Global service instance
_service_instance: Optional['ServiceContainer'] = None


class ServiceContainer:
    """Container for all application services, sharing one store."""

    def __init__(self, db_path: Optional[str] = None):
        self.db = TinyTaskDatabase(db_path or config.get_db_path())
        self.task_service = TaskService(self.db)
        self.queue_service = QueueService(self.db, self.task_service)
        self.handoff_service = HandoffService(self.db, self.task_service)
        logger.info(f"Services initialized (database: {self.db.db_path})")


def get_services() -> ServiceContainer:
    """Get the global service container instance."""
    global _service_instance
    if _service_instance is None:
        _service_instance = ServiceContainer()
    return _service_instance


def set_services(container: Optional[ServiceContainer]) -> None:
    """Replace the global container (None resets it)."""
    global _service_instance
    _service_instance = container


def get_db() -> TinyTaskDatabase:
    """Get the database instance from the service container."""
    return get_services().db

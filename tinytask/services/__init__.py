"""
Service layer for business logic.
Services contain pure business logic without HTTP framework dependencies.
"""

from tinytask.services.task_service import TaskService
from tinytask.services.queue_service import QueueService
from tinytask.services.handoff_service import HandoffService

__all__ = ["TaskService", "QueueService", "HandoffService"]

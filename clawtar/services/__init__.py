"""
Service layer for Clawtar
Queued task flow, pay-per-call fortune flow and their wiring
"""

from clawtar.services.container import ServiceContainer, build_container
from clawtar.services.fortune import FortuneService, reading_to_public
from clawtar.services.tasks import TaskService, task_to_public

__all__ = [
    "ServiceContainer",
    "build_container",
    "FortuneService",
    "reading_to_public",
    "TaskService",
    "task_to_public",
]

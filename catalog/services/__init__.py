"""Service layer for the push, retrieval and maintenance pipelines."""

from catalog.services.maintenance_service import MaintenanceService
from catalog.services.push_service import PushResult, PushService, PushState
from catalog.services.retrieval_service import RetrievalService

__all__ = [
    "MaintenanceService",
    "PushResult",
    "PushService",
    "PushState",
    "RetrievalService",
]

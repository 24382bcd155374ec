"""Durable storage for training items."""

from .audit import AuditLog, AuditAction
from .database import TrainingStore
from .models import DEFAULT_MAX_ASSIGNMENTS, ItemStatus, Submission, TrainingItem

__all__ = [
    "AuditLog",
    "AuditAction",
    "TrainingStore",
    "DEFAULT_MAX_ASSIGNMENTS",
    "ItemStatus",
    "Submission",
    "TrainingItem",
]

"""Online intent classifier shared by all requests."""

from .locking import ReadWriteLock
from .model import (
    ClassificationResult,
    IntentClassifier,
    ModelUpdateError,
    normalize_label,
    tokenize,
)

__all__ = [
    "ClassificationResult",
    "IntentClassifier",
    "ModelUpdateError",
    "ReadWriteLock",
    "normalize_label",
    "tokenize",
]

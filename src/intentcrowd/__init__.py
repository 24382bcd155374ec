"""intentcrowd - crowd-trained intent classification."""

__version__ = "0.1.0"

from intentcrowd.classifier import ClassificationResult, IntentClassifier, ModelUpdateError
from intentcrowd.storage import AuditLog, AuditAction, ItemStatus, TrainingItem, TrainingStore
from intentcrowd.training import (
    ConsensusEvaluator,
    ConsensusOutcome,
    ConsensusStatus,
    RejectReason,
    SubmissionHandler,
    SubmitResult,
    TrainingSampler,
    UtteranceIntake,
)
from intentcrowd.config import Config

__all__ = [
    # Classifier
    "IntentClassifier",
    "ClassificationResult",
    "ModelUpdateError",
    # Storage
    "TrainingStore",
    "TrainingItem",
    "ItemStatus",
    "AuditLog",
    "AuditAction",
    # Training loop
    "TrainingSampler",
    "SubmissionHandler",
    "SubmitResult",
    "RejectReason",
    "ConsensusEvaluator",
    "ConsensusOutcome",
    "ConsensusStatus",
    "UtteranceIntake",
    # Config
    "Config",
]

"""Crowd-training loop: sampling, submissions, consensus."""

from .consensus import (
    ConsensusEvaluator,
    ConsensusOutcome,
    ConsensusStatus,
    decide,
)
from .intake import IntakeResult, UtteranceIntake
from .sampler import TrainingSampler
from .submission import RejectReason, SubmissionHandler, SubmitResult

__all__ = [
    "ConsensusEvaluator",
    "ConsensusOutcome",
    "ConsensusStatus",
    "decide",
    "IntakeResult",
    "UtteranceIntake",
    "TrainingSampler",
    "RejectReason",
    "SubmissionHandler",
    "SubmitResult",
]

"""Accept rater labels and count them against item quotas."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..classifier.model import IntentClassifier, ModelUpdateError
from ..storage.database import TrainingStore
from .consensus import ConsensusEvaluator, ConsensusOutcome

logger = logging.getLogger(__name__)


class RejectReason(Enum):
    """Why a submission was not counted."""

    NOT_FOUND = "not_found"  # No item with that ID
    ALREADY_RESOLVED = "already_resolved"  # Quota already full, lost the race
    MODEL_UPDATE_FAILED = "model_update_failed"  # Classifier refused the example


@dataclass
class SubmitResult:
    """Typed result of a submission."""

    accepted: bool
    reason: Optional[RejectReason] = None
    outcome: Optional[ConsensusOutcome] = None
    message: str = ""

    @classmethod
    def accept(cls, outcome: ConsensusOutcome) -> "SubmitResult":
        return cls(accepted=True, outcome=outcome)

    @classmethod
    def reject(cls, reason: RejectReason, message: str) -> "SubmitResult":
        return cls(accepted=False, reason=reason, message=message)


class SubmissionHandler:
    """
    Apply one rater's label to an item.

    Order matters:
        1. Train the classifier. Every judgment teaches the model, even
           one that arrives after the item's quota is full.
        2. Count the submission with a single count-guarded UPDATE. This
           is the only synchronization point; of N racing raters exactly
           ``remaining`` win.
        3. Evaluate consensus on the updated history.

    A failed training step stops before the count; a failed count stops
    before evaluation.

    Usage:
        handler = SubmissionHandler(store, classifier, evaluator)
        result = handler.submit(item_id=4, label="book_flight")
        if not result.accepted:
            print(result.reason, result.message)
    """

    def __init__(
        self,
        store: TrainingStore,
        classifier: IntentClassifier,
        evaluator: Optional[ConsensusEvaluator] = None,
    ):
        self.store = store
        self.classifier = classifier
        self.evaluator = evaluator or ConsensusEvaluator(store, classifier)

    def submit(self, item_id: int, label: str) -> SubmitResult:
        """
        Submit a label for an item.

        Args:
            item_id: Training item ID.
            label: The rater's label.

        Returns:
            SubmitResult. Rejections are normal outcomes, not errors.
        """
        item = self.store.get_item(item_id)
        if item is None:
            logger.debug(f"Submission for unknown item {item_id}")
            return SubmitResult.reject(RejectReason.NOT_FOUND, f"Training item {item_id} not found")

        try:
            self.classifier.train(label, item.sentence)
        except ModelUpdateError as e:
            logger.error(f"Failed to train on item {item_id}: {e}")
            return SubmitResult.reject(RejectReason.MODEL_UPDATE_FAILED, str(e))

        if not self.store.record_submission(item_id, label.strip()):
            logger.debug(f"Item {item_id} already has all its submissions")
            return SubmitResult.reject(
                RejectReason.ALREADY_RESOLVED,
                f"Training item {item_id} has already been fully trained",
            )

        history = self.store.get_submissions(item_id)
        outcome = self.evaluator.evaluate(item, history)

        logger.info(
            f"Accepted submission {len(history)}/{item.max_assignments} for item {item_id} "
            f"({outcome.status.value})"
        )
        return SubmitResult.accept(outcome)

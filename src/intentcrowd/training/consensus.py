"""Decide when raters agree on a training item's label."""

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from ..classifier.model import IntentClassifier, normalize_label
from ..storage.database import TrainingStore
from ..storage.models import ItemStatus, Submission, TrainingItem

logger = logging.getLogger(__name__)

# Extra weight a confirmed label gets when promoted into the model
DEFAULT_PROMOTION_WEIGHT = 2


class ConsensusStatus(Enum):
    """Outcome of evaluating an item's submissions."""

    PENDING = "pending"
    RESOLVED = "resolved"
    CONFLICTED = "conflicted"


@dataclass(frozen=True)
class ConsensusOutcome:
    """Consensus status plus the winning label when resolved."""

    status: ConsensusStatus
    label: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != ConsensusStatus.PENDING


def decide(labels: Sequence[str], max_assignments: int) -> ConsensusOutcome:
    """
    Pure consensus rule over submitted labels.

    Pending until the quota is full. Then the label held by a strict
    majority of the quota wins; anything else is a conflict.
    """
    if len(labels) < max_assignments:
        return ConsensusOutcome(ConsensusStatus.PENDING)

    counts = Counter(normalize_label(label) for label in labels[:max_assignments])
    label, votes = min(counts.items(), key=lambda kv: (-kv[1], kv[0]))

    if votes * 2 > max_assignments:
        return ConsensusOutcome(ConsensusStatus.RESOLVED, label)
    return ConsensusOutcome(ConsensusStatus.CONFLICTED)


class ConsensusEvaluator:
    """
    Apply the consensus rule and its side effects.

    Holds no state of its own. The first evaluation that reaches a
    terminal outcome flips the item's status in the store; only that
    call promotes the resolved label into the classifier, so evaluating
    the same item again is harmless.

    Usage:
        evaluator = ConsensusEvaluator(store, classifier)
        outcome = evaluator.evaluate(item, store.get_submissions(item.id))
    """

    def __init__(
        self,
        store: TrainingStore,
        classifier: IntentClassifier,
        promotion_weight: int = DEFAULT_PROMOTION_WEIGHT,
    ):
        # Checked up front; resolution is committed before promotion trains
        if promotion_weight < 1:
            raise ValueError(f"promotion_weight must be at least 1, got {promotion_weight}")

        self.store = store
        self.classifier = classifier
        self.promotion_weight = promotion_weight

    def evaluate(self, item: TrainingItem, history: Sequence[Submission]) -> ConsensusOutcome:
        """Evaluate an item against its ordered submission history."""
        outcome = decide([s.label for s in history], item.max_assignments)

        if not outcome.is_terminal:
            return outcome

        if outcome.status == ConsensusStatus.RESOLVED:
            if self.store.mark_resolution(item.id, ItemStatus.RESOLVED, outcome.label):
                self.classifier.train(outcome.label, item.sentence, weight=self.promotion_weight)
                logger.info(f"Item {item.id} resolved as {outcome.label!r}")
        else:
            if self.store.mark_resolution(item.id, ItemStatus.CONFLICTED):
                logger.info(f"Item {item.id} conflicted, flagged for manual review")

        return outcome

"""Classify utterances and queue the uncertain ones for raters."""

import logging
from dataclasses import dataclass
from typing import Optional

from ..classifier.model import IntentClassifier
from ..storage.database import TrainingStore
from ..storage.models import TrainingItem

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_THRESHOLD = 0.5


@dataclass
class IntakeResult:
    """Classification plus the training item created for it, if any."""

    label: Optional[str]
    confidence: float
    queued_item: Optional[TrainingItem] = None

    @property
    def queued(self) -> bool:
        return self.queued_item is not None


class UtteranceIntake:
    """
    Entry point for command dispatchers.

    Trusts the classifier above ``threshold``; below it, the utterance
    becomes a new training item for raters.

    Usage:
        intake = UtteranceIntake(classifier, store, threshold=0.5)
        result = intake.handle("get me to denver friday", foreign_id="sms-881")
        if result.queued:
            reply("Let me check on that.")
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        store: TrainingStore,
        threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        max_assignments: Optional[int] = None,
    ):
        self.classifier = classifier
        self.store = store
        self.threshold = threshold
        self.max_assignments = max_assignments

    def handle(self, text: str, foreign_id: str = "") -> IntakeResult:
        """Classify ``text``, queueing it when confidence is low."""
        result = self.classifier.classify(text)

        if result.is_known and result.confidence >= self.threshold:
            return IntakeResult(label=result.label, confidence=result.confidence)

        logger.debug(
            f"Low confidence {result.confidence:.2f} for {result.label!r}, queueing for raters"
        )
        item = self.store.create_item(
            text, foreign_id=foreign_id, max_assignments=self.max_assignments
        )
        return IntakeResult(label=result.label, confidence=result.confidence, queued_item=item)

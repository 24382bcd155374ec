"""Online naive Bayes intent classifier.

This module provides:
1. IntentClassifier - per-label token frequency tables, trained one
   example at a time and shared by every request
2. JSON persistence so the tables survive restarts
"""

import json
import logging
import math
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .locking import ReadWriteLock

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"[\w']+")

# Bumped when the saved layout changes
FORMAT_VERSION = 1


class ModelUpdateError(Exception):
    """The classifier refused a training example. Tables are unchanged."""


def tokenize(text: str) -> list[str]:
    """Lower-case word tokens, in order of appearance."""
    return TOKEN_PATTERN.findall(text.lower())


def normalize_label(label: str) -> str:
    """Labels compare trimmed and case-insensitively."""
    return label.strip().lower()


@dataclass
class ClassificationResult:
    """Result of classifying one utterance."""

    label: Optional[str]
    confidence: float
    scores: dict[str, float] = field(default_factory=dict)

    @property
    def is_known(self) -> bool:
        return self.label is not None


class IntentClassifier:
    """
    Multinomial naive Bayes over word tokens.

    One instance is created at startup and handed to every handler.
    ``train`` takes the write side of a reader/writer lock and
    ``classify`` the read side, so concurrent readers always see either
    all or none of a training example.

    Training:
        classifier = IntentClassifier()
        classifier.train("book_flight", "get me a flight to denver")
        classifier.save("./model.json")

    Inference:
        classifier = IntentClassifier.load("./model.json")
        result = classifier.classify("fly me to denver")
        if result.confidence < 0.5:
            queue_for_raters(...)
    """

    ALPHA = 1.0

    def __init__(self):
        self._lock = ReadWriteLock()
        self._label_weights: dict[str, int] = {}
        self._token_counts: dict[str, dict[str, int]] = {}
        self._token_totals: dict[str, int] = {}
        self._vocabulary: set[str] = set()

    def train(self, label: str, text: str, weight: int = 1) -> None:
        """
        Add one example to the frequency tables.

        Args:
            label: Intent label. Normalized before use.
            text: Utterance the label applies to.
            weight: How many times the example counts.

        Raises:
            ModelUpdateError: Empty label or non-positive weight.
        """
        label = normalize_label(label or "")
        if not label:
            raise ModelUpdateError("label must not be empty")
        if weight < 1:
            raise ModelUpdateError(f"weight must be positive, got {weight}")

        tokens = tokenize(text or "")

        with self._lock.write():
            self._label_weights[label] = self._label_weights.get(label, 0) + weight
            counts = self._token_counts.setdefault(label, {})
            for token in tokens:
                counts[token] = counts.get(token, 0) + weight
            self._token_totals[label] = self._token_totals.get(label, 0) + weight * len(tokens)
            self._vocabulary.update(tokens)

        logger.debug(f"Trained {label!r} x{weight} on {len(tokens)} tokens")

    def classify(self, text: str) -> ClassificationResult:
        """
        Rank labels for an utterance.

        Confidence is ``1 - p(runner_up) / p(top)``: 0.0 for a tie or an
        untrained model, 1.0 when only one label has ever been trained.
        """
        tokens = tokenize(text or "")

        with self._lock.read():
            if not self._label_weights:
                return ClassificationResult(label=None, confidence=0.0)

            total_weight = sum(self._label_weights.values())
            # +1 leaves room for tokens never seen in training
            vocab_size = len(self._vocabulary) + 1

            log_scores = {}
            for label, label_weight in self._label_weights.items():
                counts = self._token_counts.get(label, {})
                denom = self._token_totals.get(label, 0) + self.ALPHA * vocab_size
                score = math.log(label_weight / total_weight)
                for token in tokens:
                    score += math.log((counts.get(token, 0) + self.ALPHA) / denom)
                log_scores[label] = score

        ranked = sorted(log_scores.items(), key=lambda kv: (-kv[1], kv[0]))
        top_label, top_score = ranked[0]

        norm = top_score + math.log(sum(math.exp(s - top_score) for _, s in ranked))
        scores = {label: math.exp(s - norm) for label, s in ranked}

        if len(ranked) == 1:
            confidence = 1.0
        else:
            confidence = 1.0 - math.exp(ranked[1][1] - top_score)

        return ClassificationResult(label=top_label, confidence=confidence, scores=scores)

    @property
    def labels(self) -> list[str]:
        with self._lock.read():
            return sorted(self._label_weights)

    def label_weight(self, label: str) -> int:
        """Total training weight applied to a label so far."""
        with self._lock.read():
            return self._label_weights.get(normalize_label(label), 0)

    @property
    def total_examples(self) -> int:
        with self._lock.read():
            return sum(self._label_weights.values())

    @property
    def vocabulary_size(self) -> int:
        with self._lock.read():
            return len(self._vocabulary)

    def snapshot(self) -> dict:
        """Consistent copy of the tables, suitable for JSON."""
        with self._lock.read():
            return {
                "version": FORMAT_VERSION,
                "label_weights": dict(self._label_weights),
                "token_counts": {label: dict(c) for label, c in self._token_counts.items()},
            }

    def save(self, path: Union[str, Path]) -> None:
        """Write the tables to ``path``, replacing it atomically."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.snapshot()

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.info(f"Saved model with {sum(data['label_weights'].values())} examples to {path}")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "IntentClassifier":
        """Load saved tables. A missing file gives an empty model."""
        path = Path(path)
        instance = cls()

        if not path.exists():
            logger.info(f"No saved model at {path}, starting empty")
            return instance

        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        version = data.get("version")
        if version != FORMAT_VERSION:
            raise ValueError(f"Unsupported model format version: {version}")

        instance._label_weights = {k: int(v) for k, v in data["label_weights"].items()}
        for label, counts in data["token_counts"].items():
            instance._token_counts[label] = {t: int(c) for t, c in counts.items()}
            instance._token_totals[label] = sum(instance._token_counts[label].values())
            instance._vocabulary.update(counts)

        logger.info(f"Loaded model with {len(instance._label_weights)} labels from {path}")
        return instance

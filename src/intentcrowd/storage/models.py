"""Records owned by the training store."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

# Raters per item unless the creator asks for another quota
DEFAULT_MAX_ASSIGNMENTS = 3


class ItemStatus(Enum):
    """Resolution state of a training item."""

    PENDING = "pending"  # Still collecting submissions
    RESOLVED = "resolved"  # Quota reached with a majority label
    CONFLICTED = "conflicted"  # Quota reached, no majority - needs manual review


@dataclass
class TrainingItem:
    """An utterance queued for human labeling."""

    id: int
    foreign_id: str  # Opaque reference to the originating context
    sentence: str
    max_assignments: int = DEFAULT_MAX_ASSIGNMENTS
    trained_count: int = 0
    status: ItemStatus = ItemStatus.PENDING
    resolved_label: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @property
    def is_eligible(self) -> bool:
        """Whether raters may still be served this item."""
        return self.trained_count < self.max_assignments

    @property
    def remaining(self) -> int:
        return self.max_assignments - self.trained_count

    @classmethod
    def from_row(cls, row) -> "TrainingItem":
        """Build from a ``trainings`` table row."""
        return cls(
            id=row["id"],
            foreign_id=row["foreignid"],
            sentence=row["sentence"],
            max_assignments=row["maxassignments"],
            trained_count=row["trainedcount"],
            status=ItemStatus(row["status"]),
            resolved_label=row["resolvedlabel"],
            created_at=datetime.fromisoformat(row["createdat"]) if row["createdat"] else None,
            resolved_at=datetime.fromisoformat(row["resolvedat"]) if row["resolvedat"] else None,
        )

    def to_api_dict(self) -> dict:
        """Wire format served to raters."""
        return {
            "ID": self.id,
            "ForeignID": self.foreign_id,
            "Sentence": self.sentence,
            "MaxAssignments": self.max_assignments,
        }


@dataclass
class Submission:
    """One rater's label for an item."""

    item_id: int
    label: str
    submitted_at: datetime

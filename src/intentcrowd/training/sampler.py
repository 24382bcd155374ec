"""Serve eligible training items to raters at random."""

import logging
import random
from typing import Optional

from ..storage.database import TrainingStore
from ..storage.models import TrainingItem

logger = logging.getLogger(__name__)


class TrainingSampler:
    """
    Pick one eligible item uniformly at random.

    Sampling is advisory: it never touches ``trainedcount``, and two
    raters may be served the same item. Over-assignment is prevented
    when submissions are counted, not here.

    Usage:
        sampler = TrainingSampler(store)
        item = sampler.sample()
        if item is None:
            # Nothing left to rate
            pass
    """

    def __init__(self, store: TrainingStore, rng: Optional[random.Random] = None):
        self.store = store
        self.rng = rng or random.Random()

    def sample(self, filter_id: Optional[int] = None) -> Optional[TrainingItem]:
        """
        Get an eligible item.

        Args:
            filter_id: Only consider the item with this ID.

        Returns:
            A TrainingItem, or None when nothing is eligible. None is the
            normal answer once the queue drains.
        """
        item = self.store.pick_eligible(self.rng.randrange, filter_id=filter_id)

        if item is None:
            logger.debug(f"No eligible training item (filter_id={filter_id})")

        return item

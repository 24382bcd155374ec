"""Tests for random item sampling."""

import random
from collections import Counter

import pytest

from intentcrowd.storage.database import TrainingStore
from intentcrowd.training.sampler import TrainingSampler


@pytest.fixture
def store(tmp_path):
    return TrainingStore(str(tmp_path / "trainings.db"))


@pytest.fixture
def sampler(store):
    return TrainingSampler(store, rng=random.Random(1234))


def exhaust(store, item):
    for _ in range(item.max_assignments):
        store.record_submission(item.id, "label")


class TestTrainingSampler:
    """Test TrainingSampler."""

    def test_empty_store(self, sampler):
        assert sampler.sample() is None

    def test_returns_eligible_item(self, store, sampler):
        item = store.create_item("book a flight", foreign_id="cmd-1")

        sampled = sampler.sample()
        assert sampled.id == item.id
        assert sampled.sentence == "book a flight"
        assert sampled.foreign_id == "cmd-1"

    def test_exhausted_item_never_sampled(self, store, sampler):
        done = store.create_item("done")
        exhaust(store, done)
        open_item = store.create_item("open")

        for _ in range(50):
            assert sampler.sample().id == open_item.id

    def test_exhausted_item_never_sampled_by_id(self, store, sampler):
        done = store.create_item("done")
        exhaust(store, done)

        assert sampler.sample(filter_id=done.id) is None

    def test_filter_id(self, store, sampler):
        store.create_item("one")
        two = store.create_item("two")
        store.create_item("three")

        for _ in range(20):
            assert sampler.sample(filter_id=two.id).id == two.id

    def test_filter_unknown_id(self, store, sampler):
        store.create_item("one")

        assert sampler.sample(filter_id=999) is None

    def test_sampling_has_no_side_effects(self, store, sampler):
        item = store.create_item("one")

        for _ in range(10):
            sampler.sample()

        assert store.get_item(item.id).trained_count == 0

    def test_covers_all_eligible_items(self, store, sampler):
        ids = [store.create_item(f"sentence {i}").id for i in range(4)]

        counts = Counter(sampler.sample().id for _ in range(400))

        assert set(counts) == set(ids)
        # Uniform: each item gets roughly a quarter
        assert all(60 < counts[i] < 140 for i in ids)

    def test_same_item_can_be_served_twice(self, store, sampler):
        """Sampling is advisory; nothing is claimed."""
        item = store.create_item("only one")

        assert sampler.sample().id == item.id
        assert sampler.sample().id == item.id

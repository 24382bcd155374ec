"""Tests for the submission handler."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from intentcrowd.classifier.model import IntentClassifier
from intentcrowd.storage.database import TrainingStore
from intentcrowd.storage.models import ItemStatus
from intentcrowd.training.consensus import ConsensusEvaluator, ConsensusStatus
from intentcrowd.training.submission import RejectReason, SubmissionHandler, SubmitResult


@pytest.fixture
def store(tmp_path):
    return TrainingStore(str(tmp_path / "trainings.db"))


@pytest.fixture
def classifier():
    return IntentClassifier()


@pytest.fixture
def handler(store, classifier):
    return SubmissionHandler(store, classifier, ConsensusEvaluator(store, classifier))


class TestSubmitResult:
    """Test SubmitResult constructors."""

    def test_reject(self):
        result = SubmitResult.reject(RejectReason.NOT_FOUND, "gone")

        assert result.accepted is False
        assert result.reason == RejectReason.NOT_FOUND
        assert result.message == "gone"
        assert result.outcome is None


class TestSubmit:
    """Test single-threaded submissions."""

    def test_accept_trains_and_counts(self, store, classifier, handler):
        item = store.create_item("book me a flight")

        result = handler.submit(item.id, "book_flight")

        assert result.accepted is True
        assert result.reason is None
        assert result.outcome.status == ConsensusStatus.PENDING
        assert store.get_item(item.id).trained_count == 1
        assert classifier.label_weight("book_flight") == 1
        assert [s.label for s in store.get_submissions(item.id)] == ["book_flight"]

    def test_label_is_trimmed_in_history(self, store, handler):
        item = store.create_item("book me a flight")

        handler.submit(item.id, "  book_flight ")

        assert store.get_submissions(item.id)[0].label == "book_flight"

    def test_unknown_item(self, classifier, handler):
        result = handler.submit(999, "book_flight")

        assert result.accepted is False
        assert result.reason == RejectReason.NOT_FOUND
        assert "999" in result.message
        assert classifier.total_examples == 0

    def test_exhausted_item_rejected_but_trains(self, store, classifier, handler):
        item = store.create_item("hello", max_assignments=1)
        handler.submit(item.id, "greet")

        result = handler.submit(item.id, "greet")

        assert result.accepted is False
        assert result.reason == RejectReason.ALREADY_RESOLVED
        assert store.get_item(item.id).trained_count == 1
        # 1 submission + promotion (2) + late submission (1)
        assert classifier.label_weight("greet") == 4

    def test_model_failure_does_not_count(self, store, classifier, handler):
        item = store.create_item("hello")

        result = handler.submit(item.id, "   ")

        assert result.accepted is False
        assert result.reason == RejectReason.MODEL_UPDATE_FAILED
        assert store.get_item(item.id).trained_count == 0
        assert store.get_submissions(item.id) == []
        assert classifier.total_examples == 0

    def test_full_quota_resolves(self, store, classifier, handler):
        item = store.create_item("book me a flight")

        outcomes = [handler.submit(item.id, label).outcome for label in ["book_flight", "Book_Flight", "cancel"]]

        assert [o.status for o in outcomes] == [
            ConsensusStatus.PENDING,
            ConsensusStatus.PENDING,
            ConsensusStatus.RESOLVED,
        ]
        assert outcomes[-1].label == "book_flight"
        assert store.get_item(item.id).status == ItemStatus.RESOLVED
        # Two submissions plus promotion
        assert classifier.label_weight("book_flight") == 4
        assert classifier.label_weight("cancel") == 1

    def test_full_quota_conflicts(self, store, handler):
        item = store.create_item("do the thing")

        for label in ["a", "b"]:
            handler.submit(item.id, label)
        result = handler.submit(item.id, "c")

        assert result.accepted is True
        assert result.outcome.status == ConsensusStatus.CONFLICTED
        assert store.get_item(item.id).status == ItemStatus.CONFLICTED

    def test_default_evaluator(self, store, classifier):
        handler = SubmissionHandler(store, classifier)
        item = store.create_item("hi", max_assignments=1)

        assert handler.submit(item.id, "greet").outcome.label == "greet"


class TestSubmitLogging:
    """Expected rejections are not logged as faults."""

    def test_unknown_item_below_warning(self, handler, caplog):
        caplog.set_level(logging.DEBUG, logger="intentcrowd")

        handler.submit(999, "book_flight")

        assert caplog.records
        assert all(r.levelno < logging.WARNING for r in caplog.records)

    def test_already_resolved_below_warning(self, store, handler, caplog):
        item = store.create_item("hello", max_assignments=1)
        handler.submit(item.id, "greet")
        caplog.set_level(logging.DEBUG, logger="intentcrowd")

        result = handler.submit(item.id, "greet")

        assert result.reason == RejectReason.ALREADY_RESOLVED
        assert any("already" in r.getMessage() for r in caplog.records)
        assert all(r.levelno < logging.WARNING for r in caplog.records)

    def test_model_failure_logged_as_error(self, store, handler, caplog):
        item = store.create_item("hello")
        caplog.set_level(logging.DEBUG, logger="intentcrowd")

        handler.submit(item.id, "   ")

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert errors[0].name == "intentcrowd.training.submission"


class TestConcurrentSubmissions:
    """Racing raters never push an item past its quota."""

    def test_last_slot_race(self, store, classifier, handler):
        item = store.create_item("book me a flight", max_assignments=3)
        barrier = threading.Barrier(4)

        def submit(_):
            barrier.wait()
            return handler.submit(item.id, "book_flight")

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(submit, range(4)))

        accepted = [r for r in results if r.accepted]
        rejected = [r for r in results if not r.accepted]
        assert len(accepted) == 3
        assert len(rejected) == 1
        assert rejected[0].reason == RejectReason.ALREADY_RESOLVED

        loaded = store.get_item(item.id)
        assert loaded.trained_count == 3
        assert loaded.status == ItemStatus.RESOLVED
        assert len(store.get_submissions(item.id)) == 3
        # Four trained submissions plus exactly one promotion
        assert classifier.label_weight("book_flight") == 6

    def test_counter_bounded_under_load(self, store, handler):
        items = [store.create_item(f"sentence {i}", max_assignments=2) for i in range(3)]

        def submit(n):
            return handler.submit(items[n % 3].id, "label")

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(submit, range(30)))

        assert sum(r.accepted for r in results) == 6
        for item in items:
            loaded = store.get_item(item.id)
            assert loaded.trained_count == 2
            assert len(store.get_submissions(item.id)) == 2

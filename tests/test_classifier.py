"""Tests for the online intent classifier."""

import json
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from intentcrowd.classifier.locking import ReadWriteLock
from intentcrowd.classifier.model import (
    IntentClassifier,
    ModelUpdateError,
    normalize_label,
    tokenize,
)


class TestTokenize:
    """Test tokenization and label normalization."""

    def test_lowercases_and_splits(self):
        assert tokenize("Book a Flight to Denver!") == ["book", "a", "flight", "to", "denver"]

    def test_keeps_apostrophes_and_digits(self):
        assert tokenize("don't call at 5pm") == ["don't", "call", "at", "5pm"]

    def test_non_ascii_words(self):
        assert tokenize("Réserver un vol") == ["réserver", "un", "vol"]
        assert tokenize("预订 机票") == ["预订", "机票"]

    def test_empty(self):
        assert tokenize("") == []
        assert tokenize("?!") == []

    def test_normalize_label(self):
        assert normalize_label("  Book_Flight ") == "book_flight"


class TestTraining:
    """Test frequency table updates."""

    @pytest.fixture
    def classifier(self):
        return IntentClassifier()

    def test_train_records_label(self, classifier):
        classifier.train("book_flight", "book a flight to denver")

        assert classifier.labels == ["book_flight"]
        assert classifier.label_weight("book_flight") == 1
        assert classifier.total_examples == 1
        assert classifier.vocabulary_size == 5

    def test_label_is_normalized(self, classifier):
        classifier.train(" Book_Flight", "fly me")
        classifier.train("book_flight ", "fly me again")

        assert classifier.labels == ["book_flight"]
        assert classifier.label_weight("BOOK_FLIGHT") == 2

    def test_weight_counts_multiple_times(self, classifier):
        classifier.train("cancel", "cancel it", weight=3)

        assert classifier.label_weight("cancel") == 3
        assert classifier.snapshot()["token_counts"]["cancel"] == {"cancel": 3, "it": 3}

    def test_empty_label_rejected(self, classifier):
        with pytest.raises(ModelUpdateError):
            classifier.train("   ", "some text")

        assert classifier.total_examples == 0

    def test_non_positive_weight_rejected(self, classifier):
        with pytest.raises(ModelUpdateError):
            classifier.train("cancel", "cancel it", weight=0)

        assert classifier.labels == []

    def test_counts_only_increase(self, classifier):
        classifier.train("cancel", "cancel my booking")
        before = classifier.snapshot()

        classifier.train("book_flight", "book my flight")
        after = classifier.snapshot()

        for label, weight in before["label_weights"].items():
            assert after["label_weights"][label] >= weight
            for token, count in before["token_counts"][label].items():
                assert after["token_counts"][label][token] >= count


class TestClassification:
    """Test ranking and confidence."""

    @pytest.fixture
    def classifier(self):
        classifier = IntentClassifier()
        classifier.train("book_flight", "book a flight to denver")
        classifier.train("book_flight", "i need a flight to boston tomorrow")
        classifier.train("cancel", "cancel my reservation")
        classifier.train("cancel", "please cancel the booking")
        return classifier

    def test_untrained_model(self):
        result = IntentClassifier().classify("anything")

        assert result.label is None
        assert result.confidence == 0.0
        assert not result.is_known

    def test_picks_matching_label(self, classifier):
        assert classifier.classify("flight to denver").label == "book_flight"
        assert classifier.classify("cancel the reservation").label == "cancel"

    def test_confidence_in_range(self, classifier):
        result = classifier.classify("flight to denver")

        assert 0.0 < result.confidence <= 1.0

    def test_clear_match_more_confident_than_vague(self, classifier):
        clear = classifier.classify("flight flight flight to denver")
        vague = classifier.classify("hello")

        assert clear.confidence > vague.confidence

    def test_scores_are_probabilities(self, classifier):
        result = classifier.classify("book a flight")

        assert set(result.scores) == {"book_flight", "cancel"}
        assert sum(result.scores.values()) == pytest.approx(1.0)
        assert result.scores["book_flight"] > result.scores["cancel"]

    def test_single_label_is_fully_confident(self):
        classifier = IntentClassifier()
        classifier.train("greet", "hello there")

        result = classifier.classify("completely unrelated")
        assert result.label == "greet"
        assert result.confidence == 1.0

    def test_tie_breaks_by_label_name(self):
        classifier = IntentClassifier()
        classifier.train("zeta", "hello")
        classifier.train("alpha", "hello")

        result = classifier.classify("hello")
        assert result.label == "alpha"
        assert result.confidence == 0.0

    def test_back_to_back_calls_identical(self, classifier):
        first = classifier.classify("book a flight and cancel")
        second = classifier.classify("book a flight and cancel")

        assert first == second


class TestPersistence:
    """Test save/load."""

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "model.json"
        classifier = IntentClassifier()
        classifier.train("book_flight", "book a flight")
        classifier.train("cancel", "cancel it", weight=2)
        classifier.save(path)

        restored = IntentClassifier.load(path)

        assert restored.snapshot() == classifier.snapshot()
        assert restored.classify("cancel") == classifier.classify("cancel")

    def test_load_missing_file_is_empty(self, tmp_path):
        classifier = IntentClassifier.load(tmp_path / "nope.json")

        assert classifier.total_examples == 0

    def test_save_creates_parent_dirs(self, tmp_path):
        path = tmp_path / "models" / "v1" / "model.json"
        classifier = IntentClassifier()
        classifier.train("greet", "hi")
        classifier.save(path)

        assert path.exists()
        assert list(path.parent.iterdir()) == [path]  # No temp files left behind

    def test_saved_format(self, tmp_path):
        path = tmp_path / "model.json"
        classifier = IntentClassifier()
        classifier.train("greet", "hi hi")
        classifier.save(path)

        data = json.loads(path.read_text())
        assert data == {
            "version": 1,
            "label_weights": {"greet": 1},
            "token_counts": {"greet": {"hi": 2}},
        }

    def test_unknown_version_rejected(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text(json.dumps({"version": 99, "label_weights": {}, "token_counts": {}}))

        with pytest.raises(ValueError):
            IntentClassifier.load(path)


class TestConcurrency:
    """Readers never see half-applied examples."""

    def test_snapshots_stay_consistent_during_training(self):
        classifier = IntentClassifier()
        stop = threading.Event()
        torn = []

        def trainer(label):
            for _ in range(300):
                classifier.train(label, "one two three")

        def reader():
            while not stop.is_set():
                snap = classifier.snapshot()
                for label, weight in snap["label_weights"].items():
                    if sum(snap["token_counts"][label].values()) != 3 * weight:
                        torn.append(label)
                classifier.classify("one two")

        readers = [threading.Thread(target=reader) for _ in range(3)]
        for t in readers:
            t.start()

        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(trainer, ["a", "b", "c", "d"]))

        stop.set()
        for t in readers:
            t.join()

        assert torn == []
        assert classifier.total_examples == 1200
        assert all(classifier.label_weight(label) == 300 for label in "abcd")


class TestReadWriteLock:
    """Test the lock itself."""

    def test_readers_share(self):
        lock = ReadWriteLock()
        inside = threading.Barrier(2, timeout=5)

        def read():
            with lock.read():
                inside.wait()  # Both readers must be inside at once

        threads = [threading.Thread(target=read) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert not inside.broken

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events = []

        lock.acquire_write()
        reader = threading.Thread(target=lambda: (lock.acquire_read(), events.append("read")))
        reader.start()
        reader.join(timeout=0.2)

        assert events == []  # Blocked behind the writer

        events.append("write-done")
        lock.release_write()
        reader.join(timeout=5)

        assert events == ["write-done", "read"]
        lock.release_read()

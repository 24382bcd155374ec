"""SQLite store for training items and their submissions."""

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from .audit import AuditLog, AuditAction
from .models import (
    DEFAULT_MAX_ASSIGNMENTS,
    ItemStatus,
    Submission,
    TrainingItem,
)

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 30


def get_default_db_path() -> str:
    """Get default database path in user data directory."""
    if os.name == "nt":  # Windows
        base = os.environ.get("LOCALAPPDATA", os.path.expanduser("~"))
    else:  # Unix
        base = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))

    db_dir = os.path.join(base, "intentcrowd")
    os.makedirs(db_dir, exist_ok=True)
    return os.path.join(db_dir, "trainings.db")


class TrainingStore:
    """
    Durable collection of training items.

    Every operation opens its own short-lived connection, so the store
    can be shared by any number of request threads. SQLite serializes
    writers; the only write that matters for correctness is the
    count-guarded increment in ``record_submission``.

    Usage:
        store = TrainingStore("/path/to/trainings.db")
        item = store.create_item("find me a taco place", foreign_id="cmd-17")

        if store.record_submission(item.id, "find_restaurant"):
            history = store.get_submissions(item.id)
    """

    def __init__(
        self,
        db_path: Optional[str] = None,
        default_max_assignments: int = DEFAULT_MAX_ASSIGNMENTS,
    ):
        """
        Initialize the store and create tables if needed.

        Args:
            db_path: Path to SQLite database file. Uses default if None.
            default_max_assignments: Rater quota for new items.
        """
        self.db_path = db_path or get_default_db_path()
        self.default_max_assignments = default_max_assignments

        audit_path = str(Path(self.db_path).with_suffix(".audit.jsonl"))
        self.audit = AuditLog(audit_path)

        is_new = not os.path.exists(self.db_path)
        self._init_schema()

        self.audit.log(
            AuditAction.DB_CREATE if is_new else AuditAction.DB_OPEN, {"path": self.db_path}
        )

    @contextmanager
    def _transaction(self, write: bool = False) -> Iterator[sqlite3.Connection]:
        """
        One connection, one transaction.

        Write transactions start with BEGIN IMMEDIATE so they take the
        database write lock up front instead of upgrading mid-way.
        """
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_SECONDS, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def _init_schema(self):
        """Create database tables if they don't exist."""
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_SECONDS)
        try:
            # Readers don't block the writer and vice versa
            conn.execute("PRAGMA journal_mode=WAL")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS trainings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    foreignid TEXT NOT NULL DEFAULT '',
                    sentence TEXT NOT NULL,
                    maxassignments INTEGER NOT NULL,
                    trainedcount INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL DEFAULT 'pending',
                    resolvedlabel TEXT,
                    createdat TEXT NOT NULL,
                    resolvedat TEXT,
                    CHECK (trainedcount >= 0 AND trainedcount <= maxassignments)
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS submissions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    trainingid INTEGER NOT NULL,
                    label TEXT NOT NULL,
                    submittedat TEXT NOT NULL,
                    FOREIGN KEY (trainingid) REFERENCES trainings(id)
                )
            """
            )

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_trainings_eligible "
                "ON trainings(trainedcount, maxassignments)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_submissions_training ON submissions(trainingid)"
            )
            conn.commit()
        finally:
            conn.close()

    def create_item(
        self,
        sentence: str,
        foreign_id: str = "",
        max_assignments: Optional[int] = None,
    ) -> TrainingItem:
        """
        Queue an utterance for rating.

        Args:
            sentence: The utterance raters will label.
            foreign_id: Opaque reference back to the originating context.
            max_assignments: Rater quota. Store default if None.

        Returns:
            The stored TrainingItem.
        """
        if not sentence or not sentence.strip():
            raise ValueError("sentence must not be empty")

        quota = self.default_max_assignments if max_assignments is None else max_assignments
        if quota < 1:
            raise ValueError(f"max_assignments must be at least 1, got {quota}")

        now = datetime.now()
        with self._transaction(write=True) as conn:
            cursor = conn.execute(
                """
                INSERT INTO trainings (foreignid, sentence, maxassignments, trainedcount, createdat)
                VALUES (?, ?, ?, 0, ?)
            """,
                (foreign_id, sentence, quota, now.isoformat()),
            )
            item_id = cursor.lastrowid

        self.audit.log(
            AuditAction.ITEM_CREATE,
            {"foreign_id": foreign_id, "max_assignments": quota},
            item_id=item_id,
        )
        logger.info(f"Queued training item {item_id} (quota {quota})")

        return TrainingItem(
            id=item_id,
            foreign_id=foreign_id,
            sentence=sentence,
            max_assignments=quota,
            created_at=now,
        )

    def get_item(self, item_id: int) -> Optional[TrainingItem]:
        """Get an item by ID, eligible or not."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM trainings WHERE id = ?", (item_id,)).fetchone()

        return TrainingItem.from_row(row) if row else None

    def pick_eligible(
        self,
        pick: Callable[[int], int],
        filter_id: Optional[int] = None,
    ) -> Optional[TrainingItem]:
        """
        Fetch one eligible item chosen by position.

        Counting and fetching happen in one read transaction, so the
        offset returned by ``pick`` always lands on a row.

        Args:
            pick: Called with the number of eligible rows (> 0), returns
                an offset in ``range(count)``.
            filter_id: Restrict candidates to this item ID.

        Returns:
            The chosen item, or None when nothing is eligible.
        """
        where = "trainedcount < maxassignments"
        params: list = []
        if filter_id is not None:
            where += " AND id = ?"
            params.append(filter_id)

        with self._transaction() as conn:
            count = conn.execute(f"SELECT COUNT(*) FROM trainings WHERE {where}", params).fetchone()[0]
            if count == 0:
                return None

            offset = pick(count)
            row = conn.execute(
                f"SELECT * FROM trainings WHERE {where} ORDER BY id LIMIT 1 OFFSET ?",
                params + [offset],
            ).fetchone()

        return TrainingItem.from_row(row) if row else None

    def record_submission(self, item_id: int, label: str) -> bool:
        """
        Count one submission against the item's quota.

        The increment is a single UPDATE guarded by
        ``trainedcount < maxassignments``; the submission row is written
        in the same transaction, so history length always equals
        ``trainedcount``.

        Returns:
            True if the submission was counted, False if the quota was
            already full or the item does not exist.
        """
        with self._transaction(write=True) as conn:
            cursor = conn.execute(
                """
                UPDATE trainings SET trainedcount = trainedcount + 1
                WHERE id = ? AND trainedcount < maxassignments
            """,
                (item_id,),
            )
            if cursor.rowcount == 0:
                return False

            conn.execute(
                "INSERT INTO submissions (trainingid, label, submittedat) VALUES (?, ?, ?)",
                (item_id, label, datetime.now().isoformat()),
            )

        self.audit.log(AuditAction.SUBMISSION_ACCEPT, {"label": label}, item_id=item_id)
        return True

    def get_submissions(self, item_id: int) -> list[Submission]:
        """Submitted labels for an item, oldest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM submissions WHERE trainingid = ? ORDER BY id",
                (item_id,),
            ).fetchall()

        return [
            Submission(
                item_id=row["trainingid"],
                label=row["label"],
                submitted_at=datetime.fromisoformat(row["submittedat"]),
            )
            for row in rows
        ]

    def mark_resolution(
        self,
        item_id: int,
        status: ItemStatus,
        label: Optional[str] = None,
    ) -> bool:
        """
        Move a pending item to a terminal status.

        Only the first caller succeeds; later calls for the same item
        return False and change nothing.
        """
        if status == ItemStatus.PENDING:
            raise ValueError("resolution status must be terminal")

        with self._transaction(write=True) as conn:
            cursor = conn.execute(
                """
                UPDATE trainings SET status = ?, resolvedlabel = ?, resolvedat = ?
                WHERE id = ? AND status = ?
            """,
                (status.value, label, datetime.now().isoformat(), item_id, ItemStatus.PENDING.value),
            )
            changed = cursor.rowcount == 1

        if changed:
            action = (
                AuditAction.ITEM_RESOLVE if status == ItemStatus.RESOLVED else AuditAction.ITEM_CONFLICT
            )
            self.audit.log(action, {"label": label}, item_id=item_id)

        return changed

    def list_items(
        self,
        status: Optional[ItemStatus] = None,
        limit: int = 100,
    ) -> list[TrainingItem]:
        """List items, newest first."""
        query = "SELECT * FROM trainings"
        params: list = []

        if status:
            query += " WHERE status = ?"
            params.append(status.value)

        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()

        return [TrainingItem.from_row(row) for row in rows]

    def get_stats(self) -> dict:
        """Get database statistics."""
        with self._transaction() as conn:
            total = conn.execute("SELECT COUNT(*) FROM trainings").fetchone()[0]
            eligible = conn.execute(
                "SELECT COUNT(*) FROM trainings WHERE trainedcount < maxassignments"
            ).fetchone()[0]
            submissions = conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0]
            by_status = {
                row["status"]: row["count"]
                for row in conn.execute(
                    "SELECT status, COUNT(*) AS count FROM trainings GROUP BY status"
                )
            }

        return {
            "items": total,
            "eligible": eligible,
            "submissions": submissions,
            "by_status": by_status,
        }

"""Audit trail for training items and model changes."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
import getpass
import json
import os
import threading


class AuditAction(Enum):
    """Types of auditable actions."""

    # Database operations
    DB_CREATE = "db_create"
    DB_OPEN = "db_open"

    # Training item lifecycle
    ITEM_CREATE = "item_create"
    SUBMISSION_ACCEPT = "submission_accept"
    ITEM_RESOLVE = "item_resolve"
    ITEM_CONFLICT = "item_conflict"

    # Model persistence
    MODEL_LOAD = "model_load"
    MODEL_SAVE = "model_save"


@dataclass
class AuditEntry:
    """Single audit log entry."""

    timestamp: datetime
    action: AuditAction
    user: str
    details: dict
    item_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "user": self.user,
            "details": self.details,
            "item_id": self.item_id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class AuditLog:
    """
    Append-only audit log.

    Resolution is a status change rather than a delete, and this log
    keeps the history of how each item got there.
    Stored as JSON lines file alongside the database.

    Usage:
        audit = AuditLog("/path/to/trainings.audit.jsonl")
        audit.log(AuditAction.ITEM_CREATE, {"foreign_id": "cmd-17"}, item_id=4)
        audit.log(AuditAction.ITEM_RESOLVE, {"label": "book_flight"}, item_id=4)
    """

    def __init__(self, log_path: str):
        self.log_path = log_path
        self._user = self._get_current_user()
        self._write_lock = threading.Lock()

        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

    def _get_current_user(self) -> str:
        """Get current OS username."""
        try:
            return getpass.getuser()
        except Exception:
            return "unknown"

    def log(
        self,
        action: AuditAction,
        details: Optional[dict] = None,
        item_id: Optional[int] = None,
    ) -> AuditEntry:
        """
        Log an action.

        Args:
            action: The type of action being logged.
            details: Additional context (labels, counts, paths).
            item_id: Associated training item, if any.

        Returns:
            The created AuditEntry.
        """
        entry = AuditEntry(
            timestamp=datetime.now(),
            action=action,
            user=self._user,
            details=details or {},
            item_id=item_id,
        )

        # Request threads share one file
        with self._write_lock:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(entry.to_json() + "\n")

        return entry

    def get_entries(
        self,
        action: Optional[AuditAction] = None,
        item_id: Optional[int] = None,
        limit: int = 1000,
    ) -> list[AuditEntry]:
        """Read entries, optionally filtered by action or item."""
        entries = []

        if not os.path.exists(self.log_path):
            return entries

        with open(self.log_path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue

                try:
                    data = json.loads(line)

                    if action and data["action"] != action.value:
                        continue
                    if item_id is not None and data.get("item_id") != item_id:
                        continue

                    entries.append(
                        AuditEntry(
                            timestamp=datetime.fromisoformat(data["timestamp"]),
                            action=AuditAction(data["action"]),
                            user=data["user"],
                            details=data["details"],
                            item_id=data.get("item_id"),
                        )
                    )

                    if len(entries) >= limit:
                        break

                except (json.JSONDecodeError, KeyError, ValueError):
                    continue  # Skip malformed entries

        return entries

    def get_stats(self) -> dict:
        """Entry counts by action."""
        stats = {"total_entries": 0, "by_action": {}}

        for entry in self.get_entries(limit=10**9):
            stats["total_entries"] += 1
            key = entry.action.value
            stats["by_action"][key] = stats["by_action"].get(key, 0) + 1

        return stats

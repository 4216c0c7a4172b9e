"""
pronlab/sessions.py
====================
Session Store - PronLab

Responsibility:
    - Append one record per lab run (request, results, timings, cost,
      audio size) to an append-only JSON file
    - List saved sessions and export a single session as a standalone
      JSON document
    - Track cumulative cost across all saved sessions

Records are never edited or removed once appended.
"""

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any

from pronlab.lab import ComparisonReport

logger = logging.getLogger("pronlab.sessions")


class SessionStore:
    """Append-only list of session records persisted as one JSON array."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._sessions: list[dict[str, Any]] = self._load()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def append(self, report: ComparisonReport, audio_bytes: int | None) -> dict[str, Any]:
        """
        Record ``report`` as a new session and persist the store.

        Returns:
            The appended session record.
        """
        with self._lock:
            session_id = int(time.time() * 1000)
            if self._sessions and session_id <= self._sessions[-1]["id"]:
                session_id = self._sessions[-1]["id"] + 1

            report_dict = report.to_dict()
            session = {
                "id": session_id,
                "timestamp": report.timestamp,
                "reference_text": report.reference_text,
                "language": report.language,
                "results": report_dict["results"],
                "errors": report_dict["errors"],
                "timings": report_dict["timings"],
                "statistics": report_dict["statistics"],
                "outliers": report_dict["outliers"],
                "cost": report.cost,
                "cumulative_cost": self._cumulative_cost() + report.cost,
                "audio_bytes": audio_bytes,
            }
            self._sessions.append(session)
            self._save()

        logger.info("Session saved (ID: %d)", session_id)
        return session

    def records(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(s) for s in self._sessions]

    def get(self, session_id: int) -> dict[str, Any]:
        """Raises KeyError if no session has ``session_id``."""
        with self._lock:
            for session in self._sessions:
                if session["id"] == session_id:
                    return dict(session)
        raise KeyError(session_id)

    def export(self, session_id: int) -> str:
        """Standalone pretty-printed JSON document for one session."""
        return json.dumps(self.get(session_id), indent=2, ensure_ascii=False)

    def export_filename(self, session_id: int) -> str:
        return f"session-{session_id}.json"

    @property
    def cumulative_cost(self) -> float:
        with self._lock:
            return self._cumulative_cost()

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _cumulative_cost(self) -> float:
        return sum(float(s.get("cost") or 0.0) for s in self._sessions)

    def _load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not load saved sessions from %s: %s", self.path, exc)
            return []
        if not isinstance(data, list):
            logger.warning("Session store %s is not a JSON array - ignoring it.", self.path)
            return []

        sessions = [s for s in data if isinstance(s, dict) and isinstance(s.get("id"), int)]
        if len(sessions) != len(data):
            logger.warning(
                "Skipped %d malformed session entries in %s", len(data) - len(sessions), self.path,
            )
        logger.info("Loaded %d saved sessions", len(sessions))
        return sessions

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps(self._sessions, indent=2, ensure_ascii=False), encoding="utf-8",
        )
        os.replace(tmp_path, self.path)

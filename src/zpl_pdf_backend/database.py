"""
SQLite persistence for conversion jobs.

The JobStore writes a job through to this database after every change and reloads
all jobs from it on start-up, so pending and finished jobs survive a restart. Status
messages are kept in their own table and only new ones are appended on each save.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

DEFAULT_DB_PATH = Path("data/jobs.db")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS jobs (
        id TEXT PRIMARY KEY,
        status TEXT NOT NULL,
        progress INTEGER NOT NULL,
        message TEXT NOT NULL,
        label_size TEXT NOT NULL,
        language TEXT NOT NULL,
        source_content TEXT NOT NULL,
        artifact_key TEXT,
        artifact_url TEXT,
        artifact_filename TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS job_events (
        job_id TEXT NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
        seq INTEGER NOT NULL,
        timestamp TEXT NOT NULL,
        message TEXT NOT NULL,
        PRIMARY KEY (job_id, seq)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_jobs_created_at ON jobs(created_at DESC)",
)

_UPSERT_JOB = """
    INSERT INTO jobs (
        id, status, progress, message, label_size, language, source_content,
        artifact_key, artifact_url, artifact_filename, created_at, updated_at
    ) VALUES (
        :id, :status, :progress, :message, :label_size, :language, :source_content,
        :artifact_key, :artifact_url, :artifact_filename, :created_at, :updated_at
    )
    ON CONFLICT(id) DO UPDATE SET
        status = excluded.status,
        progress = excluded.progress,
        message = excluded.message,
        artifact_key = excluded.artifact_key,
        artifact_url = excluded.artifact_url,
        artifact_filename = excluded.artifact_filename,
        updated_at = excluded.updated_at
"""


def _to_text(value: datetime) -> str:
    return value.isoformat()


def _from_text(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class JobDatabase:
    """
    SQLite store for job rows and their event history.

    Every call opens its own connection, so one instance may be shared by all worker
    threads; WAL mode lets readers run while a job is being written.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def save_job(self, job_data: Dict[str, Any]) -> None:
        """
        Insert or update a job and append events that are not stored yet.

        Args:
            job_data: Row produced by ``JobRecord.to_row``; ``artifact`` is None or a
                dict with key, url and filename, ``events`` is the full history
        """
        artifact = job_data.get("artifact") or {}
        params = {
            "id": job_data["id"],
            "status": job_data["status"],
            "progress": job_data["progress"],
            "message": job_data["message"],
            "label_size": job_data["label_size"],
            "language": job_data["language"],
            "source_content": job_data["source_content"],
            "artifact_key": artifact.get("key"),
            "artifact_url": artifact.get("url"),
            "artifact_filename": artifact.get("filename"),
            "created_at": _to_text(job_data["created_at"]),
            "updated_at": _to_text(job_data["updated_at"]),
        }
        events = job_data.get("events", [])

        with self._connect() as conn:
            conn.execute(_UPSERT_JOB, params)
            stored = conn.execute(
                "SELECT COUNT(*) FROM job_events WHERE job_id = ?", (job_data["id"],)
            ).fetchone()[0]
            conn.executemany(
                "INSERT INTO job_events (job_id, seq, timestamp, message) VALUES (?, ?, ?, ?)",
                [
                    (job_data["id"], seq, _to_text(event["timestamp"]), event["message"])
                    for seq, event in enumerate(events[stored:], start=stored)
                ],
            )

    def list_jobs(self) -> List[Dict[str, Any]]:
        """All jobs, newest first, each with its events in order."""
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM jobs ORDER BY created_at DESC").fetchall()
            events = self._events_for(conn, [row["id"] for row in rows])
            return [self._row_to_dict(row, events.get(row["id"], [])) for row in rows]

    @staticmethod
    def _events_for(conn: sqlite3.Connection, job_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        if not job_ids:
            return {}
        placeholders = ",".join("?" for _ in job_ids)
        rows = conn.execute(
            f"SELECT job_id, timestamp, message FROM job_events "
            f"WHERE job_id IN ({placeholders}) ORDER BY job_id, seq",
            job_ids,
        ).fetchall()
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for row in rows:
            grouped.setdefault(row["job_id"], []).append(
                {"timestamp": _from_text(row["timestamp"]), "message": row["message"]}
            )
        return grouped

    @staticmethod
    def _row_to_dict(row: sqlite3.Row, events: List[Dict[str, Any]]) -> Dict[str, Any]:
        artifact = None
        if row["artifact_key"]:
            artifact = {
                "key": row["artifact_key"],
                "url": row["artifact_url"],
                "filename": row["artifact_filename"],
            }
        return {
            "id": row["id"],
            "status": row["status"],
            "progress": row["progress"],
            "message": row["message"],
            "label_size": row["label_size"],
            "language": row["language"],
            "source_content": row["source_content"],
            "artifact": artifact,
            "created_at": _from_text(row["created_at"]),
            "updated_at": _from_text(row["updated_at"]),
            "events": events,
        }

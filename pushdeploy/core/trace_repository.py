"""SQLite repository for deployment traces."""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from pushdeploy.models.trace import StepStatus, Trace, TraceStep
from pushdeploy.utils.logging import get_logger

logger = get_logger("trace_repository")

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _resolve_db_path(db_path: str | Path) -> Path:
    """Resolve database path relative to project root when not absolute."""
    path = Path(db_path)
    return path if path.is_absolute() else PROJECT_ROOT / path


class TraceRepository:
    """Durable store for traces and their steps.

    Steps are insert-only; ``seq`` columns give a stable order for rows
    that share a timestamp.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = _resolve_db_path(db_path)
        self._ensure_db_exists()

    def _ensure_db_exists(self) -> None:
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS traces (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    kind TEXT NOT NULL,
                    project TEXT,
                    commit_hash TEXT,
                    branch TEXT,
                    metadata TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    completed_at TEXT,
                    phase TEXT,
                    success INTEGER
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS trace_steps (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    trace_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    status TEXT NOT NULL,
                    detail TEXT,
                    timestamp TEXT NOT NULL,
                    FOREIGN KEY (trace_id) REFERENCES traces(id) ON DELETE CASCADE
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_traces_project
                ON traces(project, started_at DESC)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_traces_started
                ON traces(started_at DESC)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_steps_trace
                ON trace_steps(trace_id, seq)
            """)
            conn.commit()

        logger.debug("trace_repository.initialized", db_path=str(self.db_path))

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _row_to_step(self, row: sqlite3.Row) -> TraceStep:
        return TraceStep(
            name=row["name"],
            status=StepStatus(row["status"]),
            detail=json.loads(row["detail"]) if row["detail"] else None,
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )

    def _row_to_trace(
        self, row: sqlite3.Row, steps: list[TraceStep] | None = None
    ) -> Trace:
        """Convert a database row to a Trace."""
        success = row["success"]
        return Trace(
            id=row["id"],
            kind=row["kind"],
            project=row["project"],
            commit=row["commit_hash"],
            branch=row["branch"],
            metadata=json.loads(row["metadata"]),
            started_at=datetime.fromisoformat(row["started_at"]),
            completed_at=(
                datetime.fromisoformat(row["completed_at"])
                if row["completed_at"]
                else None
            ),
            phase=row["phase"],
            success=None if success is None else bool(success),
            steps=steps or [],
        )

    def _load_steps(self, conn: sqlite3.Connection, trace_id: str) -> list[TraceStep]:
        rows = conn.execute(
            "SELECT * FROM trace_steps WHERE trace_id = ? ORDER BY seq ASC",
            (trace_id,),
        ).fetchall()
        return [self._row_to_step(row) for row in rows]

    async def create(self, trace: Trace) -> Trace:
        """Insert a new trace."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO traces
                (id, kind, project, commit_hash, branch, metadata, started_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    trace.id,
                    trace.kind,
                    trace.project,
                    trace.commit,
                    trace.branch,
                    json.dumps(trace.metadata, default=str),
                    trace.started_at.isoformat(),
                ),
            )
            conn.commit()

        logger.debug("trace_repository.created", trace_id=trace.id, kind=trace.kind)
        return trace

    async def exists(self, trace_id: str) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM traces WHERE id = ?", (trace_id,)
            ).fetchone()
        return row is not None

    async def add_step(self, trace_id: str, step: TraceStep) -> None:
        """Append one step to a trace."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO trace_steps (trace_id, name, status, detail, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    trace_id,
                    step.name,
                    step.status.value,
                    json.dumps(step.detail, default=str) if step.detail else None,
                    step.timestamp.isoformat(),
                ),
            )
            conn.commit()

    async def annotate(self, trace_id: str, **fields: Any) -> None:
        """Fill in project/commit/branch once they are known."""
        columns = {"project": "project", "commit": "commit_hash", "branch": "branch"}
        updates = [(columns[key], value) for key, value in fields.items() if value]
        if not updates:
            return

        assignments = ", ".join(f"{column} = ?" for column, _ in updates)
        with self._get_connection() as conn:
            conn.execute(
                f"UPDATE traces SET {assignments} WHERE id = ?",
                (*[value for _, value in updates], trace_id),
            )
            conn.commit()

    async def complete(
        self,
        trace_id: str,
        success: bool,
        completed_at: datetime,
        phase: str | None = None,
    ) -> bool:
        """Mark a trace terminal. Returns False for an unknown id."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE traces
                SET success = ?, completed_at = ?, phase = COALESCE(?, phase)
                WHERE id = ?
                """,
                (int(success), completed_at.isoformat(), phase, trace_id),
            )
            conn.commit()
            updated = cursor.rowcount > 0

        if updated:
            logger.debug("trace_repository.completed", trace_id=trace_id)
        return updated

    async def get_by_id(self, trace_id: str) -> Trace | None:
        """Get a trace and its steps by ID."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM traces WHERE id = ?", (trace_id,)
            ).fetchone()
            if not row:
                return None
            return self._row_to_trace(row, self._load_steps(conn, trace_id))

    async def get_latest(self) -> Trace | None:
        """The trace with the most recent start time across all projects."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM traces ORDER BY started_at DESC, seq DESC LIMIT 1"
            ).fetchone()
            if not row:
                return None
            return self._row_to_trace(row, self._load_steps(conn, row["id"]))

    async def list_for_project(self, project: str, limit: int = 50) -> list[Trace]:
        """Traces for one project, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM traces WHERE project = ?
                ORDER BY started_at DESC, seq DESC LIMIT ?
                """,
                (project, limit),
            ).fetchall()
            return [
                self._row_to_trace(row, self._load_steps(conn, row["id"]))
                for row in rows
            ]

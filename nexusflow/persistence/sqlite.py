"""SQLite implementation of the run repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .models import RunRecord, StepRecord
from .repository import RunRepository


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str)


class SQLiteRunRepository(RunRepository):
    """Persist run state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                run_id TEXT PRIMARY KEY,
                definition TEXT NOT NULL,
                payload TEXT,
                status TEXT NOT NULL,
                error TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT NOT NULL,
                step_id TEXT NOT NULL,
                started_at TEXT,
                completed_at TEXT,
                status TEXT,
                output TEXT,
                error TEXT
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def _run_from_row(self, row: sqlite3.Row, steps: list[StepRecord]) -> RunRecord:
        return RunRecord(
            run_id=row["run_id"],
            definition=json.loads(row["definition"]),
            payload=json.loads(row["payload"]) if row["payload"] else None,
            status=row["status"],
            error=row["error"],
            steps=steps,
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create_run(
        self, run_id: str, definition: dict, payload: dict | None = None
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO runs (run_id, definition, payload, status) VALUES (?, ?, ?, ?)",
            run_id,
            _dumps(definition),
            _dumps(payload or {}),
            "running",
        )

    async def mark_step_started(self, run_id: str, step_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT INTO step_history (run_id, step_id, started_at) VALUES (?, ?, ?)",
            run_id,
            step_id,
            _now(),
        )

    async def mark_step_completed(
        self,
        run_id: str,
        step_id: str,
        status: str,
        output: dict | None = None,
        error: str | None = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE step_history
            SET completed_at = ?, status = ?, output = ?, error = ?
            WHERE run_id = ? AND step_id = ?
            """,
            _now(),
            status,
            _dumps(output or {}),
            error,
            run_id,
            step_id,
        )

    async def mark_run_completed(
        self, run_id: str, status: str = "completed", error: str | None = None
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE runs SET status = ?, error = ? WHERE run_id = ?",
            status,
            error,
            run_id,
        )

    async def get_run(self, run_id: str) -> RunRecord | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT run_id, definition, payload, status, error FROM runs WHERE run_id = ?",
            run_id,
        )
        if not row:
            return None
        steps_rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT id, run_id, step_id, started_at, completed_at, status, output, error FROM step_history WHERE run_id = ? ORDER BY id",
            run_id,
        )
        steps = [
            StepRecord(
                id=r["id"],
                run_id=r["run_id"],
                step_id=r["step_id"],
                started_at=datetime.fromisoformat(r["started_at"]) if r["started_at"] else None,
                completed_at=datetime.fromisoformat(r["completed_at"]) if r["completed_at"] else None,
                status=r["status"],
                output=json.loads(r["output"]) if r["output"] else None,
                error=r["error"],
            )
            for r in steps_rows
        ]
        return self._run_from_row(row, steps)

    async def list_runs(self) -> list[RunRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT run_id, definition, payload, status, error FROM runs",
        )
        return [self._run_from_row(row, []) for row in rows]

from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from .settings import settings


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    When the configured path is a directory (a volume mounted at that path),
    the ledger file is placed inside it.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "cjsync.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              namespace TEXT,
              object_kind TEXT,
              object_name TEXT,
              reason TEXT,
              message TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS reconciles (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              namespace TEXT NOT NULL,
              name TEXT NOT NULL,
              outcome TEXT NOT NULL, -- synced|skipped|failed
              updated INTEGER NOT NULL DEFAULT 0,
              deleted INTEGER NOT NULL DEFAULT 0,
              error TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            CREATE INDEX IF NOT EXISTS idx_reconciles_key ON reconciles(namespace, name);
            """
        )


def log_event(
    level: str,
    message: str,
    namespace: str | None = None,
    object_kind: str | None = None,
    object_name: str | None = None,
    reason: str | None = None,
) -> None:
    with connect() as conn:
        conn.execute(
            """
            INSERT INTO events (ts, level, namespace, object_kind, object_name, reason, message)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (utc_now(), level.upper(), namespace, object_kind, object_name, reason, message),
        )


@dataclass(frozen=True)
class ReconcileRow:
    id: int
    ts: str
    namespace: str
    name: str
    outcome: str
    updated: int
    deleted: int
    error: str | None


def _rows_to_dataclass(rows: Iterable[sqlite3.Row], cls: Any) -> list[Any]:
    out: list[Any] = []
    for r in rows:
        out.append(cls(**dict(r)))
    return out


def record_reconcile(
    namespace: str,
    name: str,
    outcome: str,
    updated: int = 0,
    deleted: int = 0,
    error: str | None = None,
) -> None:
    with connect() as conn:
        conn.execute(
            """
            INSERT INTO reconciles (ts, namespace, name, outcome, updated, deleted, error)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (utc_now(), namespace, name, outcome, updated, deleted, error),
        )


def latest_reconciles(limit: int = 100) -> list[ReconcileRow]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM reconciles ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return _rows_to_dataclass(rows, ReconcileRow)


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]

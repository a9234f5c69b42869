from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable

from .settings import settings

logger = logging.getLogger("mco")


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (a bind mount of a missing file
    becomes one), the journal file is placed inside it.
    """
    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "mco.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False, timeout=10)
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
              cluster TEXT,
              message TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS reconciliations (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              namespace TEXT NOT NULL,
              cluster TEXT NOT NULL,
              action TEXT NOT NULL, -- add|update|delete
              outcome TEXT NOT NULL, -- ok|failed
              error TEXT,
              duration_ms REAL
            );

            CREATE INDEX IF NOT EXISTS idx_events_cluster ON events(namespace, cluster);
            CREATE INDEX IF NOT EXISTS idx_reconciliations_cluster ON reconciliations(namespace, cluster);
            """
        )


_LEVELS = {"DEBUG": logging.DEBUG, "INFO": logging.INFO, "WARN": logging.WARNING, "ERROR": logging.ERROR}


def log_event(level: str, message: str, cluster: str | None = None, namespace: str | None = None) -> None:
    level = level.upper()
    where = f"{namespace}/{cluster}: " if cluster else ""
    logger.log(_LEVELS.get(level, logging.INFO), "%s%s", where, message)
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, namespace, cluster, message) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), level, namespace, cluster, message),
        )


@dataclass(frozen=True)
class ReconcileRow:
    id: int
    ts: str
    namespace: str
    cluster: str
    action: str
    outcome: str
    error: str | None
    duration_ms: float | None


def _rows_to_dataclass(rows: Iterable[sqlite3.Row], cls: Any) -> list[Any]:
    out: list[Any] = []
    for r in rows:
        out.append(cls(**dict(r)))
    return out


def record_reconcile(
    namespace: str,
    cluster: str,
    action: str,
    error: BaseException | None = None,
    duration_ms: float | None = None,
) -> None:
    with connect() as conn:
        conn.execute(
            """
            INSERT INTO reconciliations (ts, namespace, cluster, action, outcome, error, duration_ms)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                utc_now(),
                namespace,
                cluster,
                action,
                "failed" if error else "ok",
                str(error) if error else None,
                duration_ms,
            ),
        )


def list_reconciliations(limit: int = 100, cluster: str | None = None, namespace: str | None = None) -> list[ReconcileRow]:
    with connect() as conn:
        rows = conn.execute(
            """
            SELECT * FROM reconciliations
            WHERE (? IS NULL OR cluster=?) AND (? IS NULL OR namespace=?)
            ORDER BY id DESC LIMIT ?
            """,
            (cluster, cluster, namespace, namespace, limit),
        ).fetchall()
        return _rows_to_dataclass(rows, ReconcileRow)


def latest_events(limit: int = 100, cluster: str | None = None) -> list[dict[str, Any]]:
    with connect() as conn:
        if cluster:
            rows = conn.execute(
                "SELECT * FROM events WHERE cluster=? ORDER BY id DESC LIMIT ?", (cluster, limit)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]

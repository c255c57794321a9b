"""SQLite store for users, strategies, topics, posts, fact checks and usage.

Records are kept as JSON text, one row each. Topic status lives in its own
column so ``compare_and_set_status`` is a single conditional UPDATE, atomic
across threads, store objects and processes sharing the database file.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from quality_gate.config import INTERNAL_LINK_MIN_RELEVANCE, INTERNAL_LINKS_MAX, STORE_PATH
from quality_gate.models import ExistingContent, FactCheckReport, InternalLink

# Topic statuses
PENDING = "pending"
GENERATING = "generating"
COMPLETED = "completed"
FAILED = "failed"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS records (
        section TEXT NOT NULL,
        id TEXT NOT NULL,
        data TEXT NOT NULL,
        PRIMARY KEY (section, id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS topics (
        id TEXT PRIMARY KEY,
        status TEXT NOT NULL,
        status_changed_at REAL NOT NULL,
        data TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS fact_checks (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        post_id TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS usage (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        data TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_topics_status ON topics(status)",
    "CREATE INDEX IF NOT EXISTS idx_fact_checks_post ON fact_checks(post_id)",
    "CREATE INDEX IF NOT EXISTS idx_usage_user ON usage(user_id)",
)


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _dumps(record: dict) -> str:
    return json.dumps(record, ensure_ascii=False)


class SqliteStore:
    """Read and write pipeline records in a single SQLite database."""

    def __init__(self, path: Path = STORE_PATH, clock=time.time, sqlite_timeout: float = 10.0):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.clock = clock
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(self.path),
            timeout=sqlite_timeout,
            isolation_level=None,  # autocommit; writes open their own transaction
            check_same_thread=False,
        )
        try:
            self._conn.execute("PRAGMA journal_mode = WAL;")
        except sqlite3.OperationalError:
            pass
        with self._lock:
            for statement in _SCHEMA:
                self._conn.execute(statement)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ── Row helpers ───────────────────────────────────────────────────────

    @contextmanager
    def _write(self):
        """One write transaction, holding the database write lock from the start."""
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    def _read(self, section: str, record_id) -> Optional[dict]:
        with self._lock:
            row = self._conn.execute(
                "SELECT data FROM records WHERE section=? AND id=?", (section, str(record_id))
            ).fetchone()
        return json.loads(row[0]) if row else None

    def _upsert(self, section: str, record: dict) -> dict:
        record = dict(record)
        record.setdefault("id", _new_id())
        with self._write() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO records (section, id, data) VALUES (?, ?, ?)",
                (section, str(record["id"]), _dumps(record)),
            )
        return record

    @staticmethod
    def _topic_from_row(row) -> dict:
        status, changed_at, data = row
        topic = json.loads(data)
        topic["status"] = status
        topic["status_changed_at"] = changed_at
        return topic

    # ── Users & strategies ────────────────────────────────────────────────

    def add_user(self, user: dict) -> dict:
        return self._upsert("users", user)

    def get_user(self, user_id: str) -> Optional[dict]:
        return self._read("users", user_id)

    def add_strategy(self, strategy: dict) -> dict:
        return self._upsert("strategies", strategy)

    def get_strategy(self, strategy_id: str) -> Optional[dict]:
        return self._read("strategies", strategy_id)

    def get_internal_links(self, strategy_id: str) -> list[InternalLink]:
        """Audited pages worth linking to, best first."""
        strategy = self.get_strategy(strategy_id) or {}
        pages = [
            p for p in strategy.get("audited_pages", [])
            if p.get("url") and float(p.get("aiso_score") or 0) > INTERNAL_LINK_MIN_RELEVANCE
        ]
        pages.sort(key=lambda p: float(p.get("aiso_score") or 0), reverse=True)
        return [
            InternalLink(
                url=p["url"],
                title=p.get("title", ""),
                meta_description=p.get("meta_description", ""),
                relevance=float(p.get("aiso_score") or 0),
            )
            for p in pages[:INTERNAL_LINKS_MAX]
        ]

    def get_existing_content(self, strategy_id: str) -> list[ExistingContent]:
        strategy = self.get_strategy(strategy_id) or {}
        return [
            ExistingContent(url=c.get("url", ""), title=c.get("title", ""), excerpt=c.get("excerpt", ""))
            for c in strategy.get("existing_content", [])
            if c.get("url") or c.get("title")
        ]

    # ── Topics ────────────────────────────────────────────────────────────

    def add_topic(self, topic: dict) -> dict:
        topic = dict(topic)
        topic.setdefault("id", _new_id())
        topic.setdefault("status", PENDING)
        topic.setdefault("status_changed_at", self.clock())
        with self._write() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO topics (id, status, status_changed_at, data) VALUES (?, ?, ?, ?)",
                (str(topic["id"]), topic["status"], float(topic["status_changed_at"]), _dumps(topic)),
            )
        return topic

    def get_topic(self, topic_id: str) -> Optional[dict]:
        with self._lock:
            row = self._conn.execute(
                "SELECT status, status_changed_at, data FROM topics WHERE id=?", (str(topic_id),)
            ).fetchone()
        return self._topic_from_row(row) if row else None

    def list_topics(self, status: Optional[str] = None) -> list[dict]:
        sql = "SELECT status, status_changed_at, data FROM topics"
        params: tuple = ()
        if status is not None:
            sql += " WHERE status=?"
            params = (status,)
        with self._lock:
            rows = self._conn.execute(sql + " ORDER BY rowid", params).fetchall()
        return [self._topic_from_row(row) for row in rows]

    def compare_and_set_status(self, topic_id: str, expected, new: str) -> bool:
        """Move a topic to ``new`` only if its status is in ``expected``.

        ``expected`` is one status or a collection of them. Returns False
        (and changes nothing) when the topic is missing or in another status.
        """
        allowed = [expected] if isinstance(expected, str) else list(expected)
        if not allowed:
            return False
        placeholders = ", ".join("?" for _ in allowed)
        with self._write() as conn:
            cur = conn.execute(
                f"UPDATE topics SET status=?, status_changed_at=? WHERE id=? AND status IN ({placeholders})",
                (new, self.clock(), str(topic_id), *allowed),
            )
        return cur.rowcount == 1

    def set_status(self, topic_id: str, status: str) -> None:
        with self._write() as conn:
            conn.execute(
                "UPDATE topics SET status=?, status_changed_at=? WHERE id=?",
                (status, self.clock(), str(topic_id)),
            )

    def reconcile_stale(self, max_age_seconds: float) -> list[str]:
        """Flip "generating" topics older than ``max_age_seconds`` to "failed"."""
        now = self.clock()
        cutoff = now - max_age_seconds
        with self._write() as conn:
            flipped = [
                row[0] for row in conn.execute(
                    "SELECT id FROM topics WHERE status=? AND status_changed_at < ? ORDER BY rowid",
                    (GENERATING, cutoff),
                )
            ]
            conn.executemany(
                "UPDATE topics SET status=?, status_changed_at=? WHERE id=? AND status=?",
                [(FAILED, now, topic_id, GENERATING) for topic_id in flipped],
            )
        return flipped

    # ── Posts ─────────────────────────────────────────────────────────────

    def persist_post(self, post: dict, fact_check: FactCheckReport) -> dict:
        """Store a generated post plus one record per fact-checked claim."""
        post = dict(post)
        post.setdefault("id", _new_id())
        post.setdefault("status", "draft")
        post.setdefault("created_at", _now())
        post["fact_checks"] = [
            {"claim": c.text, "status": c.status.value, "confidence": c.confidence, "sources": list(c.sources)}
            for c in fact_check.claims
        ]
        with self._write() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO records (section, id, data) VALUES (?, ?, ?)",
                ("posts", post["id"], _dumps(post)),
            )
            conn.executemany(
                "INSERT INTO fact_checks (post_id, data) VALUES (?, ?)",
                [
                    (post["id"], _dumps({"id": _new_id(), "post_id": post["id"], **record}))
                    for record in post["fact_checks"]
                ],
            )
        return post

    def get_post(self, post_id: str) -> Optional[dict]:
        return self._read("posts", post_id)

    def update_similarity(self, post_id: str, similarity_score: int, warnings) -> None:
        with self._write() as conn:
            row = conn.execute(
                "SELECT data FROM records WHERE section='posts' AND id=?", (str(post_id),)
            ).fetchone()
            if row is None:
                return
            post = json.loads(row[0])
            post["similarity_checked"] = True
            post["similarity_score"] = similarity_score
            post["duplicate_warnings"] = list(warnings)
            conn.execute(
                "UPDATE records SET data=? WHERE section='posts' AND id=?", (_dumps(post), str(post_id))
            )

    def fact_checks_for(self, post_id: str) -> list[dict]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT data FROM fact_checks WHERE post_id=? ORDER BY seq", (post_id,)
            ).fetchall()
        return [json.loads(row[0]) for row in rows]

    # ── Usage ─────────────────────────────────────────────────────────────

    def log_usage(
        self,
        user_id: str,
        operation_type: str,
        cost_usd: float,
        tokens_used: int,
        metadata: Optional[dict] = None,
    ) -> dict:
        entry = {
            "id": _new_id(),
            "user_id": user_id,
            "operation_type": operation_type,
            "cost_usd": cost_usd,
            "tokens_used": tokens_used,
            "metadata": metadata or {},
            "created_at": _now(),
        }
        with self._write() as conn:
            conn.execute("INSERT INTO usage (user_id, data) VALUES (?, ?)", (user_id, _dumps(entry)))
        return entry

    def usage_for(self, user_id: str) -> list[dict]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT data FROM usage WHERE user_id=? ORDER BY seq", (user_id,)
            ).fetchall()
        return [json.loads(row[0]) for row in rows]

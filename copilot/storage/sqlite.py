"""
SQLite repository backends.

A single `SqliteDatabase` owns the connection and schema; the prompt and
session repositories share it. Writes that touch several rows run in one
transaction, so a failed history append commits nothing.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

from copilot.storage.base import PromptRepository, SessionRepository
from copilot.types import (
    ChatMessage,
    ChatSessionConfig,
    MessageTemplate,
    PromptDefinition,
    StorageError,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS prompts (
    name TEXT PRIMARY KEY,
    model TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS prompt_messages (
    prompt_name TEXT NOT NULL REFERENCES prompts(name) ON DELETE CASCADE,
    idx INTEGER NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    params TEXT NOT NULL DEFAULT '{}',
    attachments TEXT,
    PRIMARY KEY (prompt_name, idx)
);

CREATE TABLE IF NOT EXISTS sessions (
    session_id TEXT PRIMARY KEY,
    doc_id TEXT NOT NULL,
    workspace_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    prompt_name TEXT NOT NULL,
    model TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS draft_messages (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT,
    attachments TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS history (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    session_id TEXT NOT NULL REFERENCES sessions(session_id),
    role TEXT NOT NULL,
    content TEXT,
    attachments TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_session ON history(session_id, seq);
"""


def _dump(value: Any) -> Optional[str]:
    return json.dumps(value) if value is not None else None


def _load(raw: Optional[str]) -> Any:
    return json.loads(raw) if raw else None


def _row_to_message(row: sqlite3.Row) -> ChatMessage:
    return ChatMessage(
        id=row["id"],
        session_id=row["session_id"],
        role=row["role"],
        content=row["content"],
        attachments=_load(row["attachments"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class SqliteDatabase:
    def __init__(self, path: Union[str, Path]) -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self) -> None:
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys=ON")
            cursor = self._conn.cursor()
            cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
            )
            if not cursor.fetchone():
                cursor.executescript(SCHEMA)
                cursor.execute(
                    "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
                )
                self._conn.commit()
                logger.info("Database %s initialized with schema version %s", self.path, SCHEMA_VERSION)
            else:
                cursor.execute("SELECT version FROM schema_version")
                row = cursor.fetchone()
                if row and row[0] != SCHEMA_VERSION:
                    logger.warning(
                        "Schema version mismatch: expected %s, got %s", SCHEMA_VERSION, row[0]
                    )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self.path}: {e}") from e

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Database connection not initialized")
        return self._conn

    @property
    def lock(self):
        """Re-entrant lock serializing every statement on the connection."""
        return self._lock

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        try:
            with self._lock:
                return self.conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}") from e

    def fetchall(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            with self._lock:
                return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}") from e

    def transaction(self) -> "_Transaction":
        return _Transaction(self)


class _Transaction:
    """Hold the database lock for one commit-or-rollback unit of work."""

    def __init__(self, db: SqliteDatabase) -> None:
        self.db = db

    def __enter__(self) -> sqlite3.Cursor:
        self.db._lock.acquire()
        try:
            return self.db.conn.cursor()
        except BaseException as e:
            self.db._lock.release()
            if isinstance(e, sqlite3.Error):
                raise StorageError(f"Transaction failed: {e}") from e
            raise

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is None:
                self.db.conn.commit()
            else:
                self.db.conn.rollback()
        finally:
            self.db._lock.release()
        if exc_type is not None and issubclass(exc_type, sqlite3.Error):
            raise StorageError(f"Transaction failed: {exc}") from exc
        return False


class SqlitePromptRepository(PromptRepository):
    def __init__(self, db: SqliteDatabase) -> None:
        self.db = db

    def _messages(self, name: str) -> List[MessageTemplate]:
        rows = self.db.fetchall(
            "SELECT * FROM prompt_messages WHERE prompt_name = ? ORDER BY idx", (name,)
        )
        return [
            MessageTemplate(
                role=row["role"],
                content=row["content"],
                params=json.loads(row["params"]),
                attachments=_load(row["attachments"]),
            )
            for row in rows
        ]

    @staticmethod
    def _write_messages(
        cursor: sqlite3.Cursor, name: str, messages: Sequence[MessageTemplate]
    ) -> None:
        cursor.execute("DELETE FROM prompt_messages WHERE prompt_name = ?", (name,))
        cursor.executemany(
            """
            INSERT INTO prompt_messages (prompt_name, idx, role, content, params, attachments)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (name, idx, m.role, m.content, json.dumps(m.params), _dump(m.attachments))
                for idx, m in enumerate(messages)
            ],
        )

    def get(self, name: str) -> Optional[PromptDefinition]:
        with self.db.lock:
            row = self.db.fetchone("SELECT * FROM prompts WHERE name = ?", (name,))
            if row is None:
                return None
            return PromptDefinition(name=row["name"], model=row["model"], messages=self._messages(name))

    def set(self, prompt: PromptDefinition) -> None:
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO prompts (name, model) VALUES (?, ?)
                ON CONFLICT(name) DO UPDATE SET model = excluded.model
                """,
                (prompt.name, prompt.model),
            )
            self._write_messages(cursor, prompt.name, prompt.messages)
        logger.debug("Saved prompt %s", prompt.name)

    def update(self, name: str, messages: Sequence[MessageTemplate]) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute("SELECT 1 FROM prompts WHERE name = ?", (name,))
            if cursor.fetchone() is None:
                return False
            self._write_messages(cursor, name, messages)
        return True

    def delete(self, name: str) -> bool:
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM prompts WHERE name = ?", (name,))
            return cursor.rowcount > 0

    def list(self) -> List[PromptDefinition]:
        with self.db.lock:
            rows = self.db.fetchall("SELECT * FROM prompts ORDER BY name")
            return [
                PromptDefinition(name=row["name"], model=row["model"], messages=self._messages(row["name"]))
                for row in rows
            ]


class SqliteSessionRepository(SessionRepository):
    def __init__(self, db: SqliteDatabase) -> None:
        self.db = db

    def get_config(self, session_id: str) -> Optional[ChatSessionConfig]:
        row = self.db.fetchone("SELECT * FROM sessions WHERE session_id = ?", (session_id,))
        if row is None:
            return None
        return ChatSessionConfig(
            session_id=row["session_id"],
            doc_id=row["doc_id"],
            workspace_id=row["workspace_id"],
            user_id=row["user_id"],
            prompt_name=row["prompt_name"],
            model=row["model"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def create_config(self, config: ChatSessionConfig) -> None:
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO sessions
                (session_id, doc_id, workspace_id, user_id, prompt_name, model, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    config.session_id,
                    config.doc_id,
                    config.workspace_id,
                    config.user_id,
                    config.prompt_name,
                    config.model,
                    config.created_at.isoformat(),
                ),
            )

    def get_history(self, session_id: str) -> List[ChatMessage]:
        rows = self.db.fetchall(
            "SELECT * FROM history WHERE session_id = ? ORDER BY seq", (session_id,)
        )
        return [_row_to_message(row) for row in rows]

    def append_history(self, session_id: str, messages: Sequence[ChatMessage]) -> None:
        with self.db.transaction() as cursor:
            cursor.executemany(
                """
                INSERT INTO history (id, session_id, role, content, attachments, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        m.id,
                        session_id,
                        m.role,
                        m.content,
                        _dump(m.attachments),
                        m.created_at.isoformat(),
                    )
                    for m in messages
                ],
            )
            cursor.executemany(
                "DELETE FROM draft_messages WHERE id = ?", [(m.id,) for m in messages]
            )
        logger.debug("Appended %d messages to session %s", len(messages), session_id)

    def save_message(self, message: ChatMessage) -> None:
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT OR REPLACE INTO draft_messages
                (id, session_id, role, content, attachments, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    message.id,
                    message.session_id,
                    message.role,
                    message.content,
                    _dump(message.attachments),
                    message.created_at.isoformat(),
                ),
            )

    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        row = self.db.fetchone("SELECT * FROM draft_messages WHERE id = ?", (message_id,))
        return _row_to_message(row) if row is not None else None

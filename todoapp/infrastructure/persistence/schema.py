"""Schema creation and forward migration for the SQLite task database.

``SchemaManager.ensure_schema`` is idempotent and runs on every start. It
recognises the table shapes produced by earlier releases and brings them to
the current layout:

* ``tasks`` without ``user_id`` (single-user release): rebuilt, rows are
  handed to the demo account.
* ``tasks`` whose status column only accepts the old German labels: rebuilt
  with ``open``/``completed``.
* ``tasks`` without ``dueDate``: column and index added in place.
* no ``tasks`` at all: created, demo account seeded, ``tasks.json`` imported.

Every branch runs in a single transaction; any failure rolls back and is
raised as :class:`MigrationError`.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Set

from ...domain.errors import MigrationError

logger = logging.getLogger(__name__)

DEMO_USERNAME = "demo"
DEMO_EMAIL = "demo@todoapp.local"
DEMO_PASSWORD = "demo123"

LEGACY_STATUS_LABELS = {
    "offen": "open",
    "erledigt": "completed",
    "open": "open",
    "completed": "completed",
}

USERS_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        email TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        emailVerified INTEGER NOT NULL DEFAULT 0,
        verificationToken TEXT,
        verificationTokenExpires INTEGER,
        createdAt TEXT NOT NULL,
        updatedAt TEXT NOT NULL
    )
"""

TASKS_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS {name} (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        text TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'open' CHECK (status IN ('open', 'completed')),
        dueDate TEXT,
        createdAt TEXT NOT NULL,
        updatedAt TEXT NOT NULL,
        FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
    )
"""

USER_VERIFICATION_COLUMNS = (
    ("emailVerified", "INTEGER NOT NULL DEFAULT 0"),
    ("verificationToken", "TEXT"),
    ("verificationTokenExpires", "INTEGER"),
)

INDEX_STATEMENTS = (
    "CREATE INDEX IF NOT EXISTS idx_users_email ON users(email)",
    "CREATE INDEX IF NOT EXISTS idx_users_verification_token ON users(verificationToken)",
    "CREATE INDEX IF NOT EXISTS idx_users_username ON users(username)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_user_id ON tasks(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_due_date ON tasks(dueDate)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)",
)

# Normalises any timestamp SQLite understands; NULL when unparsable.
_TIMESTAMP_EXPR = "strftime('%Y-%m-%dT%H:%M:%S+00:00', {column})"


class MigrationOutcome(str, Enum):
    CREATED = "created"
    LEGACY_REBUILT = "legacy_rebuilt"
    STATUS_LABELS_REBUILT = "status_labels_rebuilt"
    DUE_DATE_ADDED = "due_date_added"
    CURRENT = "current"


class SchemaManager:
    """Creates and migrates the ``users``/``tasks`` schema on one connection."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        password_hasher: Callable[[str], str],
        *,
        legacy_tasks_path: Optional[Path] = None,
        seed_demo_user: bool = True,
        auto_migrate: bool = True,
    ) -> None:
        self._conn = conn
        self._hash_password = password_hasher
        self._legacy_tasks_path = legacy_tasks_path
        self._seed_demo_user = seed_demo_user
        self._auto_migrate = auto_migrate

    def ensure_schema(self) -> MigrationOutcome:
        try:
            with self._transaction():
                self._conn.execute(USERS_TABLE_SQL)
                self._add_missing_user_columns()
                outcome = self._migrate_tasks_table()
                for statement in INDEX_STATEMENTS:
                    self._conn.execute(statement)
        except sqlite3.Error as exc:
            logger.error("Schema migration failed and was rolled back: %s", exc)
            raise MigrationError(f"Database schema migration failed: {exc}") from exc
        logger.info("Database schema ready (%s)", outcome.value)

        if outcome in (MigrationOutcome.CREATED, MigrationOutcome.LEGACY_REBUILT):
            self.import_legacy_json()
        return outcome

    # Tasks table ----------------------------------------------------------
    def _migrate_tasks_table(self) -> MigrationOutcome:
        columns = self._table_columns("tasks")

        if not columns:
            self._conn.execute(TASKS_TABLE_SQL.format(name="tasks"))
            if self._seed_demo_user:
                self._ensure_demo_user()
            return MigrationOutcome.CREATED

        if "user_id" not in columns:
            self._require_auto_migrate("tasks table predates user accounts")
            demo_id = self._ensure_demo_user()
            copied = self._rebuild_tasks_table(columns, owner_id=demo_id)
            logger.info("Migrated %d legacy tasks to demo user id=%s", copied, demo_id)
            return MigrationOutcome.LEGACY_REBUILT

        if self._has_legacy_status_labels():
            self._require_auto_migrate("tasks table uses legacy status labels")
            copied = self._rebuild_tasks_table(columns, owner_id=None)
            logger.info("Rebuilt tasks table with current status labels (%d rows)", copied)
            return MigrationOutcome.STATUS_LABELS_REBUILT

        if "dueDate" not in columns:
            self._require_auto_migrate("tasks table has no dueDate column")
            self._conn.execute("ALTER TABLE tasks ADD COLUMN dueDate TEXT")
            self._normalize_task_timestamps()
            logger.info("Added dueDate column to tasks")
            return MigrationOutcome.DUE_DATE_ADDED

        if self._seed_demo_user:
            self._ensure_demo_user()
        return MigrationOutcome.CURRENT

    def _rebuild_tasks_table(self, columns: Set[str], owner_id: Optional[int]) -> int:
        now = self._now()
        select_parts: List[str] = ["id" if "id" in columns else "NULL"]
        params: List[Any] = []

        if owner_id is None:
            select_parts.append("user_id")
        else:
            select_parts.append("?")
            params.append(owner_id)

        select_parts.append("text")

        if "status" in columns:
            select_parts.append(
                "CASE status WHEN 'erledigt' THEN 'completed' "
                "WHEN 'completed' THEN 'completed' ELSE 'open' END"
            )
        else:
            select_parts.append("'open'")

        select_parts.append("dueDate" if "dueDate" in columns else "NULL")

        for column in ("createdAt", "updatedAt"):
            if column in columns:
                select_parts.append(f"COALESCE({_TIMESTAMP_EXPR.format(column=column)}, ?)")
            else:
                select_parts.append("?")
            params.append(now)

        self._conn.execute("DROP TABLE IF EXISTS tasks_new")
        self._conn.execute(TASKS_TABLE_SQL.format(name="tasks_new"))
        cur = self._conn.execute(
            f"""
            INSERT INTO tasks_new (id, user_id, text, status, dueDate, createdAt, updatedAt)
            SELECT {', '.join(select_parts)} FROM tasks
            """,
            params,
        )
        copied = cur.rowcount
        self._conn.execute("DROP TABLE tasks")
        self._conn.execute("ALTER TABLE tasks_new RENAME TO tasks")
        return copied

    def _normalize_task_timestamps(self) -> None:
        # CURRENT_TIMESTAMP text sorts before ISO text written later on the same day.
        now = self._now()
        created = _TIMESTAMP_EXPR.format(column="createdAt")
        updated = _TIMESTAMP_EXPR.format(column="updatedAt")
        self._conn.execute(
            f"""
            UPDATE tasks
            SET createdAt = COALESCE({created}, createdAt, ?),
                updatedAt = COALESCE({updated}, updatedAt, ?)
            """,
            (now, now),
        )

    def _has_legacy_status_labels(self) -> bool:
        row = self._conn.execute(
            "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = 'tasks'"
        ).fetchone()
        return bool(row and row[0] and "'erledigt'" in row[0])

    def _require_auto_migrate(self, reason: str) -> None:
        if not self._auto_migrate:
            raise sqlite3.OperationalError(f"{reason} and automatic migration is disabled")

    # Users table ----------------------------------------------------------
    def _add_missing_user_columns(self) -> None:
        columns = self._table_columns("users")
        for name, definition in USER_VERIFICATION_COLUMNS:
            if name not in columns:
                self._conn.execute(f"ALTER TABLE users ADD COLUMN {name} {definition}")
                logger.info("Added %s column to users", name)

    def _ensure_demo_user(self) -> int:
        """Return the demo account id, creating or correcting it as needed."""
        row = self._conn.execute(
            "SELECT id, email, emailVerified, verificationToken FROM users WHERE username = ?",
            (DEMO_USERNAME,),
        ).fetchone()
        now = self._now()
        if row is None:
            cur = self._conn.execute(
                """
                INSERT INTO users (
                    username, email, password_hash, emailVerified,
                    verificationToken, verificationTokenExpires, createdAt, updatedAt
                )
                VALUES (?, ?, ?, 1, NULL, NULL, ?, ?)
                """,
                (DEMO_USERNAME, DEMO_EMAIL, self._hash_password(DEMO_PASSWORD), now, now),
            )
            logger.info("Created demo user id=%s", cur.lastrowid)
            return int(cur.lastrowid)

        user_id, email, verified, token = row[0], row[1], row[2], row[3]
        if email != DEMO_EMAIL or not verified or token is not None:
            self._conn.execute(
                """
                UPDATE users
                SET email = ?, emailVerified = 1, verificationToken = NULL,
                    verificationTokenExpires = NULL, updatedAt = ?
                WHERE id = ?
                """,
                (DEMO_EMAIL, now, user_id),
            )
            logger.warning("Corrected drifted demo user configuration (id=%s)", user_id)
        return int(user_id)

    # Legacy JSON import ---------------------------------------------------
    def import_legacy_json(self) -> int:
        """Import the flat-file task list once and rename it to ``*.backup``.

        Returns the number of imported tasks. An unreadable file is logged and
        left untouched so it can be fixed and imported on the next start.
        """
        path = self._legacy_tasks_path
        if path is None or not path.is_file():
            return 0
        try:
            entries = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Could not read legacy task file %s: %s", path, exc)
            return 0
        if not isinstance(entries, list):
            logger.error("Legacy task file %s does not contain a JSON array", path)
            return 0

        rows = [row for row in (self._legacy_entry_to_row(entry) for entry in entries) if row]
        skipped = len(entries) - len(rows)
        try:
            with self._transaction():
                owner_id = self._ensure_demo_user()
                self._conn.executemany(
                    """
                    INSERT INTO tasks (user_id, text, status, dueDate, createdAt, updatedAt)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [(owner_id, *row) for row in rows],
                )
        except sqlite3.Error as exc:
            logger.error("Legacy JSON import failed and was rolled back: %s", exc)
            raise MigrationError(f"Legacy task import failed: {exc}") from exc

        backup = path.with_name(path.name + ".backup")
        path.rename(backup)
        logger.info(
            "Imported %d legacy tasks from %s (skipped %d); source moved to %s",
            len(rows),
            path,
            skipped,
            backup,
        )
        return len(rows)

    def _legacy_entry_to_row(self, entry: Any) -> Optional[tuple]:
        if not isinstance(entry, dict):
            return None
        text = entry.get("text")
        if not isinstance(text, str) or not text.strip():
            return None
        status = LEGACY_STATUS_LABELS.get(str(entry.get("status", "")).lower(), "open")
        due_date = entry.get("dueDate")
        try:
            due_value = date.fromisoformat(due_date).isoformat() if due_date else None
        except (TypeError, ValueError):
            due_value = None
        created_at = self._normalize_timestamp(entry.get("createdAt"))
        updated_at = self._normalize_timestamp(entry.get("updatedAt")) if entry.get("updatedAt") else created_at
        return (text.strip(), status, due_value, created_at, updated_at)

    # Helpers --------------------------------------------------------------
    def _table_columns(self, table: str) -> Set[str]:
        cur = self._conn.execute(f"PRAGMA table_info({table})")
        return {row[1] for row in cur.fetchall()}

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        self._conn.execute("BEGIN")
        try:
            yield
        except BaseException:
            self._conn.rollback()
            raise
        else:
            self._conn.commit()

    @classmethod
    def _normalize_timestamp(cls, value: Any) -> str:
        if isinstance(value, str) and value:
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return cls._now()
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc).replace(microsecond=0).isoformat()
        return cls._now()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def describe_tables(conn: sqlite3.Connection) -> Dict[str, List[str]]:
    """Column names of every non-internal table, keyed by table name."""
    tables = [
        row[0]
        for row in conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
        )
    ]
    return {
        table: [row[1] for row in conn.execute(f"PRAGMA table_info({table})")]
        for table in tables
    }

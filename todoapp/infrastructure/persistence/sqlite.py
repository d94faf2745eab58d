import logging
import sqlite3
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from ...domain.errors import DuplicateIdentity, StorageError
from ...domain.models import Task, TaskStatus, User
from ...domain.ports.persistence import PersistenceGateway
from .schema import MigrationOutcome, SchemaManager

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


def prepare_database_path(path: Path) -> None:
    """Create the database directory and make sure it is writable."""
    directory = path.parent
    try:
        if not directory.exists():
            logger.info("Creating database directory %s", directory)
            directory.mkdir(parents=True, exist_ok=True)
        probe = directory / ".write_test"
        probe.write_text("test", encoding="utf-8")
        probe.unlink()
    except OSError as exc:
        raise StorageError(f"Database directory {directory} is not writable: {exc}") from exc


class SQLitePersistence(PersistenceGateway):
    """SQLite-backed implementation of the persistence gateway."""

    def __init__(
        self,
        path: Union[Path, str],
        password_hasher: Callable[[str], str],
        *,
        legacy_tasks_path: Optional[Path] = None,
        seed_demo_user: bool = True,
        auto_migrate: bool = True,
    ) -> None:
        if str(path) != MEMORY_DATABASE:
            prepare_database_path(Path(path))
        self._path = str(path)
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.Lock()
        self._schema = SchemaManager(
            self._conn,
            password_hasher,
            legacy_tasks_path=legacy_tasks_path,
            seed_demo_user=seed_demo_user,
            auto_migrate=auto_migrate,
        )
        try:
            with self._lock:
                self.migration_outcome: MigrationOutcome = self._schema.ensure_schema()
        except StorageError:
            self._conn.close()
            raise

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def ping(self) -> bool:
        try:
            with self._lock:
                self._conn.execute("SELECT 1").fetchone()
        except sqlite3.Error:
            logger.exception("Database ping failed")
            return False
        return True

    # UserRepository API ----------------------------------------------------
    def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        *,
        email_verified: bool,
        verification_token: Optional[str],
        verification_token_expires: Optional[int],
    ) -> User:
        now = self._now()
        try:
            with self._lock, self._conn:
                cur = self._conn.execute(
                    """
                    INSERT INTO users (
                        username, email, password_hash, emailVerified, verificationToken,
                        verificationTokenExpires, createdAt, updatedAt
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        username,
                        email,
                        password_hash,
                        int(email_verified),
                        verification_token,
                        verification_token_expires,
                        now,
                        now,
                    ),
                )
                user_id = cur.lastrowid
                cur = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,))
                row = cur.fetchone()
        except sqlite3.IntegrityError as exc:
            raise DuplicateIdentity("Username or email is already taken.") from exc
        if not row:
            raise StorageError("Failed to persist user.")
        return self._row_to_user(row)

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        return self._fetch_user("SELECT * FROM users WHERE id = ?", (user_id,))

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._fetch_user("SELECT * FROM users WHERE username = ?", (username,))

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._fetch_user("SELECT * FROM users WHERE email = ?", (email,))

    def get_user_by_verification_token(self, token: str, now_ms: int) -> Optional[User]:
        return self._fetch_user(
            """
            SELECT * FROM users
            WHERE verificationToken = ? AND verificationTokenExpires > ?
            """,
            (token, now_ms),
        )

    def mark_email_verified(self, user_id: int, token: str) -> Optional[User]:
        """Consume ``token``; returns None when it was already used or replaced."""
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                UPDATE users
                SET emailVerified = 1, verificationToken = NULL,
                    verificationTokenExpires = NULL, updatedAt = ?
                WHERE id = ? AND verificationToken = ?
                """,
                (self._now(), user_id, token),
            )
            if cur.rowcount == 0:
                return None
            row = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise StorageError(f"User {user_id} disappeared during verification.")
        return self._row_to_user(row)

    def update_verification_token(self, user_id: int, token: str, expires_ms: int) -> User:
        with self._lock, self._conn:
            self._conn.execute(
                """
                UPDATE users
                SET verificationToken = ?, verificationTokenExpires = ?, updatedAt = ?
                WHERE id = ?
                """,
                (token, expires_ms, self._now(), user_id),
            )
            row = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise StorageError(f"User {user_id} disappeared during token rotation.")
        return self._row_to_user(row)

    # TaskRepository API ----------------------------------------------------
    def list_tasks(self, user_id: int) -> List[Task]:
        return self._fetch_tasks(
            "SELECT * FROM tasks WHERE user_id = ? ORDER BY createdAt DESC, id DESC",
            (user_id,),
        )

    def create_task(self, user_id: int, text: str, due_date: Optional[str]) -> Task:
        now = self._now()
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                INSERT INTO tasks (user_id, text, status, dueDate, createdAt, updatedAt)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (user_id, text, TaskStatus.OPEN.value, due_date, now, now),
            )
            task_id = cur.lastrowid
            row = self._conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            raise StorageError("Failed to persist task.")
        return self._row_to_task(row)

    def get_task(self, task_id: int, user_id: int) -> Optional[Task]:
        rows = self._fetch_tasks(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
        )
        return rows[0] if rows else None

    def update_task_status(self, task_id: int, user_id: int, status: TaskStatus) -> Optional[Task]:
        return self._update_task(task_id, user_id, "status", status.value)

    def update_task_text(self, task_id: int, user_id: int, text: str) -> Optional[Task]:
        return self._update_task(task_id, user_id, "text", text)

    def update_task_due_date(self, task_id: int, user_id: int, due_date: Optional[str]) -> Optional[Task]:
        return self._update_task(task_id, user_id, "dueDate", due_date)

    def delete_task(self, task_id: int, user_id: int) -> Optional[Task]:
        with self._lock, self._conn:
            row = self._conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
            ).fetchone()
            if not row:
                return None
            self._conn.execute(
                "DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
            )
        return self._row_to_task(row)

    def delete_completed_tasks(self, user_id: int) -> int:
        with self._lock, self._conn:
            cur = self._conn.execute(
                "DELETE FROM tasks WHERE status = ? AND user_id = ?",
                (TaskStatus.COMPLETED.value, user_id),
            )
            return cur.rowcount

    def get_tasks_due_between(self, user_id: int, start: str, end: str) -> List[Task]:
        return self._fetch_tasks(
            """
            SELECT * FROM tasks
            WHERE user_id = ? AND dueDate IS NOT NULL AND dueDate BETWEEN ? AND ?
            ORDER BY dueDate ASC, createdAt DESC, id DESC
            """,
            (user_id, start, end),
        )

    def get_overdue_tasks(self, user_id: int, today: str) -> List[Task]:
        return self._fetch_tasks(
            """
            SELECT * FROM tasks
            WHERE user_id = ? AND dueDate IS NOT NULL AND dueDate < ? AND status = ?
            ORDER BY dueDate ASC, createdAt DESC, id DESC
            """,
            (user_id, today, TaskStatus.OPEN.value),
        )

    def get_tasks_due_on(self, user_id: int, day: str) -> List[Task]:
        return self._fetch_tasks(
            """
            SELECT * FROM tasks
            WHERE user_id = ? AND dueDate = ?
            ORDER BY createdAt DESC, id DESC
            """,
            (user_id, day),
        )

    # Helpers ----------------------------------------------------------------
    def _update_task(self, task_id: int, user_id: int, column: str, value: Any) -> Optional[Task]:
        with self._lock, self._conn:
            cur = self._conn.execute(
                f"UPDATE tasks SET {column} = ?, updatedAt = ? WHERE id = ? AND user_id = ?",
                (value, self._now(), task_id, user_id),
            )
            if cur.rowcount == 0:
                return None
            row = self._conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return self._row_to_task(row) if row else None

    def _fetch_user(self, query: str, params: tuple) -> Optional[User]:
        with self._lock:
            row = self._conn.execute(query, params).fetchone()
        return self._row_to_user(row) if row else None

    def _fetch_tasks(self, query: str, params: tuple) -> List[Task]:
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_task(row) for row in rows]

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).replace(microsecond=0).isoformat()

    @staticmethod
    def _parse_datetime(value: str) -> datetime:
        try:
            result = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            # Fallback for legacy CURRENT_TIMESTAMP values
            result = datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
        if result.tzinfo is None:
            return result.replace(tzinfo=timezone.utc)
        return result.astimezone(timezone.utc)

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            email_verified=bool(row["emailVerified"]),
            verification_token=row["verificationToken"],
            verification_token_expires=row["verificationTokenExpires"],
            created_at=self._parse_datetime(row["createdAt"]),
            updated_at=self._parse_datetime(row["updatedAt"]),
        )

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            user_id=row["user_id"],
            text=row["text"],
            status=TaskStatus(row["status"]),
            due_date=date.fromisoformat(row["dueDate"]) if row["dueDate"] else None,
            created_at=self._parse_datetime(row["createdAt"]),
            updated_at=self._parse_datetime(row["updatedAt"]),
        )

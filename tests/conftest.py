# tests/conftest.py

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

import pytest

from todoapp.application.services.task_service import TaskService
from todoapp.application.services.user_service import UserService
from todoapp.domain.models import PublicUser
from todoapp.infrastructure.persistence.sqlite import SQLitePersistence
from todoapp.infrastructure.security import PasswordHasher

JWT_SECRET = "unit-test-secret-that-is-long-enough-for-hs256"
TODAY = date(2024, 3, 15)


class FrozenClock:
    """Deterministic replacement for ``datetime.now(timezone.utc)``."""

    def __init__(self) -> None:
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def hasher() -> PasswordHasher:
    # Lowest bcrypt cost keeps the suite fast.
    return PasswordHasher(rounds=4)


@pytest.fixture()
def persistence(tmp_path: Path, hasher: PasswordHasher) -> Iterator[SQLitePersistence]:
    store = SQLitePersistence(
        tmp_path / "todos.db",
        hasher.hash,
        legacy_tasks_path=tmp_path / "tasks.json",
    )
    yield store
    store.close()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def user_service(persistence: SQLitePersistence, hasher: PasswordHasher, clock: FrozenClock) -> UserService:
    return UserService(persistence, hasher, jwt_secret=JWT_SECRET, clock=clock)


@pytest.fixture()
def task_service(persistence: SQLitePersistence) -> TaskService:
    return TaskService(persistence, today=lambda: TODAY)


@pytest.fixture()
def alice(user_service: UserService) -> PublicUser:
    user, _ = user_service.create_user("alice", "alice@example.com", "secret123", auto_verify=True)
    return user


@pytest.fixture()
def bob(user_service: UserService) -> PublicUser:
    user, _ = user_service.create_user("bob", "bob@example.com", "secret456", auto_verify=True)
    return user

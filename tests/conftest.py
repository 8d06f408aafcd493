from __future__ import annotations

import itertools
import threading
from datetime import datetime, timedelta, timezone

import pytest

from frame.domain.contracts import AdminCapability
from frame.domain.service import AccountService, StatusService
from frame.repository import AccountRepository, MemoryCollection, StatusRepository, UserRepository


class StepClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime) -> None:
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            self._now += timedelta(seconds=1)
            return self._now


def sequential_ids():
    counter = itertools.count(1)
    return lambda: f"{next(counter):024x}"


@pytest.fixture
def collections() -> dict[str, MemoryCollection]:
    return {name: MemoryCollection(name) for name in ("accounts", "users", "statuses")}


@pytest.fixture
def clock() -> StepClock:
    return StepClock(datetime(2024, 1, 1, tzinfo=timezone.utc))


@pytest.fixture
def service(collections, clock) -> AccountService:
    return AccountService(
        AccountRepository(collections["accounts"]),
        UserRepository(collections["users"]),
        StatusRepository(collections["statuses"]),
        clock=clock,
        id_factory=sequential_ids(),
    )


@pytest.fixture
def status_service(collections) -> StatusService:
    return StatusService(StatusRepository(collections["statuses"]))


@pytest.fixture
def admin() -> AdminCapability:
    return AdminCapability(admin_id="admin-1", name="Ada Admin", groups=frozenset({"root"}))


@pytest.fixture
def add_user(collections):
    """Insert a user document the way the external user aggregate stores it."""

    def _add(username: str, user_id: str | None = None) -> str:
        user_id = user_id or f"user-{username}"
        collections["users"].insert({"_id": user_id, "username": username, "roles": {}})
        return user_id

    return _add

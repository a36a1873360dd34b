"""Shared fixtures: in-memory store, registered profiles, per-session services."""

from datetime import datetime, timedelta, timezone

import pytest

from lovesignal.application import (
    AccountService,
    ContactService,
    ProfileCache,
    Registered,
    SignalLedger,
)
from lovesignal.application.ports import StoreUnavailableError
from lovesignal.domain import Profile
from lovesignal.infrastructure import InMemoryDocumentStore


@pytest.fixture
def store(clock) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def register(store):
    """Create profile + username reservation for an identity id."""

    def _register(identity_id: str, username: str) -> Profile:
        result = AccountService(store).create_profile(
            identity_id, username, f"{username.lower()}@example.com"
        )
        assert isinstance(result, Registered)
        return result.profile

    return _register


@pytest.fixture
def alice(register) -> Profile:
    return register("uid-alice", "Alice")


@pytest.fixture
def bob(register) -> Profile:
    return register("uid-bob", "bob")


@pytest.fixture
def carol(register) -> Profile:
    return register("uid-carol", "carol")


@pytest.fixture
def contacts(store) -> ContactService:
    return ContactService(store)


@pytest.fixture
def ledger(store, contacts) -> SignalLedger:
    return SignalLedger(store, ProfileCache(store), contacts=contacts)


class StepClock:
    """Deterministic clock: each now() is one second after the previous."""

    def __init__(self, start: datetime | None = None) -> None:
        self._current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        self._current += timedelta(seconds=1)
        return self._current


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def take_store_down(store, monkeypatch):
    """Call to make every operation on the shared store fail as unavailable."""

    def _unavailable(*args, **kwargs):
        raise StoreUnavailableError("backend down")

    def _take_down() -> None:
        for name in ("get", "query", "create", "update", "delete", "batch", "subscribe"):
            monkeypatch.setattr(store, name, _unavailable)

    return _take_down

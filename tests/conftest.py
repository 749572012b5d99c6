"""
Shared fixtures: a fresh in-memory database per test and sign-up helpers.
"""

import pytest

from symptom_diary.database import init_engine
from symptom_diary.events import EventBus
from symptom_diary.identity import sign_up
from symptom_diary.store import DataStore


@pytest.fixture
def engine():
    eng = init_engine("sqlite://")
    yield eng
    eng.dispose()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def store(engine, bus):
    return DataStore(engine, bus)


@pytest.fixture
def make_user(store):
    """Sign up a user and return its identity id."""
    def _make(name: str, role: str = "patient") -> str:
        ctx = sign_up(store, f"{name}@example.com", "secret123", name.title(), role)
        return ctx.user_id
    return _make


@pytest.fixture
def patient(make_user):
    return make_user("pat", "patient")


@pytest.fixture
def other_patient(make_user):
    return make_user("olive", "patient")


@pytest.fixture
def doctor(make_user):
    return make_user("doc", "doctor")

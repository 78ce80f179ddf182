from __future__ import annotations

import datetime as dt
import os
from typing import Generator

os.environ.setdefault("WT_STORAGE", "memory")

import pytest
from fastapi.testclient import TestClient

from weldtrack import services
from weldtrack.domain import AppState
from weldtrack.main import create_app
from weldtrack.state import WorkAccountingStore
from weldtrack.storage import MemoryDocumentStore


@pytest.fixture()
def sample_day() -> dt.date:
    return dt.date(2024, 1, 1)


@pytest.fixture()
def state() -> AppState:
    return AppState()


@pytest.fixture()
def seeded() -> AppState:
    """One welder (Ivanov) and one norm (XT44, 0.5 h per unit)."""
    state = services.add_welder(AppState(), "Ivanov").state
    return services.add_norm(state, "XT44", 0.5).state


@pytest.fixture()
def documents() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture()
def store(documents: MemoryDocumentStore) -> WorkAccountingStore:
    return WorkAccountingStore(documents, "test-state")


@pytest.fixture()
def client(store: WorkAccountingStore) -> Generator[TestClient, None, None]:
    app = create_app(store)
    with TestClient(app) as c:
        yield c

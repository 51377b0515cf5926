"""
Shared pytest fixtures for the finance core tests.
"""

import itertools
from datetime import datetime
from pathlib import Path

import pytest

from fincore.persistence import InMemoryBackend
from fincore.services import FinanceService
from fincore.store import FinanceStore
from fincore.transforms import load_seed

NOW = datetime(2026, 10, 18, 12, 0, 0)
SEED_PATH = Path(__file__).resolve().parent.parent / "data" / "seed.json"


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def ids():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def store(backend, clock, ids):
    return FinanceStore(backend, "user-1", clock=clock, id_factory=ids)


@pytest.fixture
def seeded(store):
    store.seed(load_seed(str(SEED_PATH)))
    return store


@pytest.fixture
def service(seeded):
    return FinanceService(seeded)

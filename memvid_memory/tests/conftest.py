import pytest

from memvid_memory.tests.fakes import FakeStore


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def db_store():
    return FakeStore([
        {"title": "DB choice", "text": "Uses PostgreSQL", "label": "decision"},
    ])

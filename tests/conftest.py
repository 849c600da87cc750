# tests/conftest.py
import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.database import make_engine
from app.main import create_app
from app.repositories.memory import MemStorage
from app.repositories.sql import SqlStorage


def _make_storage(kind: str):
    if kind == "memory":
        storage = MemStorage()
    else:
        storage = SqlStorage(make_engine("sqlite://"))
    storage.init()
    return storage


@pytest.fixture(params=["memory", "sql"])
def storage(request):
    """Frischer, initialisierter Storage pro Test, für beide Implementierungen."""
    return _make_storage(request.param)


@pytest.fixture
def mem_storage():
    return _make_storage("memory")


@pytest.fixture
def settings():
    return Settings(SCHEDULER_INTERVAL_SECONDS=0, STORAGE_BACKEND="memory")


@pytest.fixture
def app(settings, mem_storage):
    return create_app(settings, storage=mem_storage)


@pytest.fixture
def client(app):
    return TestClient(app)

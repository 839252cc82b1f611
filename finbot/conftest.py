# finbot/conftest.py
import pytest

from finbot.core.config import settings
from finbot.core.database import init_engine, create_all_tables, drop_all_tables, dispose_engine


TEST_WEBHOOK_SECRET = "X"


@pytest.fixture(scope="function", autouse=True)
def sqlite_db():
    """
    Fresh in-memory SQLite database per test.

    The engine uses a StaticPool so every session sees the same connection.
    """
    init_engine("sqlite://")
    create_all_tables()
    yield
    drop_all_tables()
    dispose_engine()


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
    return TEST_WEBHOOK_SECRET


@pytest.fixture
def admin_key(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_KEY", "test-admin-key")
    return "test-admin-key"

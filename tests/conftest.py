import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
# Force dev mode for default test app; production validation tests override settings directly
os.environ["APP_ENV"] = "dev"
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:test-token")
os.environ.setdefault("TELEGRAM_TARGET_CHAT_ID", "-100777")
os.environ.setdefault("TELEGRAM_DRY_RUN", "true")
os.environ.setdefault("DELIVERY_MODE", "inline")
# No pause between photo chunks in tests
os.environ.setdefault("PHOTO_CHUNK_DELAY_MIN_MS", "0")
os.environ.setdefault("PHOTO_CHUNK_DELAY_MAX_MS", "0")

from app.core.config import settings  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.deps import get_db  # noqa: E402

# Import all models so Base.metadata includes every table
import app.db.models as _models  # noqa: E402, F401
from app.main import app  # noqa: E402
from app.services.messaging import message_composer  # noqa: E402
from tests.helpers.telegram import TelegramRecorder  # noqa: E402

# Test database URL (in-memory SQLite for fast tests)
SQLALCHEMY_DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///:memory:")


def is_sqlite() -> bool:
    """Return True if the test database is SQLite (e.g. in-memory tests)."""
    return (SQLALCHEMY_DATABASE_URL or "").startswith("sqlite")


# SQLite needs check_same_thread=False and StaticPool; Postgres does not support check_same_thread
if is_sqlite():
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    engine = create_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Make the app (and the sweep CLI) use the same DB
import app.db.session as _db_session  # noqa: E402

_db_session.engine = engine
_db_session.SessionLocal = TestingSessionLocal


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    """Create a test client with database dependency override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def telegram(monkeypatch):
    """Replace every Bot API call with a recorder (no network, no dry-run logging)."""
    recorder = TelegramRecorder()
    monkeypatch.setattr("app.services.messaging.telegram_client.call_telegram", recorder)
    return recorder


@pytest.fixture(autouse=True)
def _reset_settings():
    """Undo per-test settings changes (delivery mode, limits, secrets)."""
    snapshot = settings.model_dump()
    yield
    for key, value in snapshot.items():
        if getattr(settings, key) != value:
            setattr(settings, key, value)
    message_composer.reset_cache()


@pytest.fixture
def worker_mode():
    settings.delivery_mode = "worker"
    yield

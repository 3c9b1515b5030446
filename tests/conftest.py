import os

import pytest
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from booking_backend.database import Base, create_store_engine  # noqa: E402

from factories import RecordingNotifier  # noqa: E402


@pytest.fixture
def store_engine(tmp_path):
    engine = create_store_engine(f'sqlite:///{tmp_path / "booking.db"}', timeout_seconds=10)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(store_engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=store_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(session_factory, notifier, monkeypatch: pytest.MonkeyPatch):
    from fastapi.testclient import TestClient

    from booking_backend.main import app
    from booking_backend.routes import booking_routes

    monkeypatch.setattr('booking_backend.routes.booking_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('booking_backend.routes.admin_routes.ensure_database_ready', lambda: None)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[booking_routes.get_db] = override_get_db
    app.dependency_overrides[booking_routes.get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

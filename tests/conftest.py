import datetime as dt

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.api.deps import get_provider, get_session_factory
from app.db import get_db
from app.main import create_app
from app.models.base import Base
from app.models.medication import Medication
from app.models.user import User
from app.services.calls import CallProviderError
from app.services.scheduler import Scheduler
from app.services.store import MedicationStore
from app.settings import settings


class FakeProvider:
    def __init__(self, fail_with: str | None = None):
        self.fail_with = fail_with
        self.requests = []

    async def place_call(self, request):
        self.requests.append(request)
        if self.fail_with:
            raise CallProviderError(self.fail_with)
        return f"CA{len(self.requests):04d}"


@pytest.fixture(autouse=True)
def utc_clock(monkeypatch):
    monkeypatch.setattr(settings, "TZ", "UTC")
    monkeypatch.setattr(settings, "API_KEY", None)


@pytest.fixture()
def session_factory(tmp_path):
    # file-backed so worker threads each get their own connection
    engine = create_engine(
        f"sqlite:///{tmp_path / 'medcalls.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture()
def store(session_factory):
    return MedicationStore(session_factory)


@pytest.fixture()
def provider():
    return FakeProvider()


@pytest.fixture()
def failing_provider():
    return FakeProvider(fail_with="Invalid 'To' phone number")


@pytest.fixture()
def scheduler(session_factory, provider):
    return Scheduler.from_session_factory(session_factory, provider)


@pytest.fixture()
def make_user(session_factory):
    def _make(phone: str | None = "03001234567", full_name: str | None = "Sara", **kwargs) -> int:
        with session_factory() as db:
            user = User(phone_number=phone, full_name=full_name, **kwargs)
            db.add(user)
            db.commit()
            return user.id

    return _make


@pytest.fixture()
def make_med(session_factory):
    def _make(
        user_id: int,
        name: str,
        time: str,
        *,
        retry_count: int = 0,
        last_called_at: dt.datetime | None = None,
        is_taken: bool = False,
    ) -> int:
        with session_factory() as db:
            med = Medication(
                user_id=user_id,
                name=name,
                dosage="1 tablet",
                time=time,
                retry_count=retry_count,
                last_called_at=last_called_at,
                is_taken=is_taken,
            )
            db.add(med)
            db.commit()
            return med.id

    return _make


@pytest.fixture()
def load_med(session_factory):
    def _load(med_id: int) -> Medication:
        with session_factory() as db:
            med = db.get(Medication, med_id)
            db.expunge(med)
            return med

    return _load


@pytest.fixture()
def client(session_factory, provider):
    app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_provider] = lambda: provider
    return TestClient(app)

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from doctrack.database import get_db, get_session_factory, init_db
from doctrack.dependencies import get_dispatcher
from doctrack.main import app
from doctrack.models import Document, Payment, Profile, TranslatedRecord, VerificationRecord
from doctrack.services.audit import AuditLog
from doctrack.services.outbox import OutboxWorker
from doctrack.services.repository import OrderRepository
from doctrack.services.verification import ManualPaymentVerifier

OPERATOR_ID = "operator-1"


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _new_id(kwargs):
    return kwargs.pop("id", None) or str(uuid.uuid4())


class RecordingDispatcher:
    """Stands in for NotificationDispatcher; records every delivery attempt."""

    def __init__(self):
        self.calls = []
        self.failing = set()

    def notify(self, event_type, recipient_user_id, payload):
        self.calls.append((event_type, recipient_user_id, payload))
        return event_type not in self.failing

    def calls_for(self, event_type):
        return [c for c in self.calls if c[0] == event_type]

    def close(self):
        pass


class Seeder:
    """Inserts rows straight through the ORM, committing each one."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def _add(self, obj):
        db = self._session_factory()
        try:
            db.add(obj)
            db.commit()
            return obj.id
        finally:
            db.close()

    def profile(self, id=None, name="Maria Silva", email="maria@example.com", role="user"):
        return self._add(Profile(
            id=id or str(uuid.uuid4()), name=name, email=email, role=role,
            created_at="2024-01-01T00:00:00Z",
        ))

    def document(self, user_id, filename="certidao.pdf", created_at="2024-03-01T10:00:00Z", **kwargs):
        kwargs.setdefault("status", "pending")
        return self._add(Document(
            id=_new_id(kwargs),
            user_id=user_id, filename=filename, created_at=created_at, **kwargs,
        ))

    def verification(self, user_id, filename="certidao.pdf", created_at="2024-03-02T10:00:00Z", **kwargs):
        kwargs.setdefault("status", "pending")
        return self._add(VerificationRecord(
            id=_new_id(kwargs),
            user_id=user_id, filename=filename, created_at=created_at, **kwargs,
        ))

    def translated(self, user_id, verification_id, filename="certidao_en.pdf",
                   created_at="2024-03-03T10:00:00Z", **kwargs):
        return self._add(TranslatedRecord(
            id=_new_id(kwargs),
            original_document_id=verification_id, user_id=user_id, filename=filename,
            created_at=created_at, **kwargs,
        ))

    def payment(self, user_id, document_id, amount=40.0, status="pending_verification",
                created_at="2024-03-01T11:00:00Z", **kwargs):
        kwargs.setdefault("payment_method", "zelle")
        return self._add(Payment(
            id=_new_id(kwargs),
            user_id=user_id, document_id=document_id, amount=amount, status=status,
            created_at=created_at, updated_at=created_at, **kwargs,
        ))


@pytest.fixture
def tmp_data(tmp_path):
    data_dir = tmp_path / "DocTrack"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def test_db(tmp_data):
    db_path = tmp_data / "doctrack.sqlite"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    TestSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    init_db(db_path)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestSession
    yield TestSession
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def db(test_db):
    session = test_db()
    yield session
    session.close()


@pytest.fixture
def repository(db):
    return OrderRepository(db)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def seed(test_db):
    return Seeder(test_db)


@pytest.fixture
def operator(seed):
    return seed.profile(id=OPERATOR_ID, name="Finance Op", email="finance@example.com", role="finance")


@pytest.fixture
def verifier(repository, dispatcher, test_db):
    worker = OutboxWorker(repository, dispatcher, max_attempts=3)
    return ManualPaymentVerifier(
        repository, AuditLog(test_db), worker, storage_base_url="https://storage.example.com/documents"
    )


@pytest.fixture
def client(test_db, dispatcher):
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    c = TestClient(app)
    yield c

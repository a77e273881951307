import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from doctrack.config import settings

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class Base(DeclarativeBase):
    pass


def utcnow() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_path: Path | None = None):
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


engine = get_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    return SessionLocal


SCHEMA_SQL = """\
-- ============================================================
-- PROFILES
-- ============================================================
CREATE TABLE IF NOT EXISTS profiles (
    id         TEXT PRIMARY KEY,
    name       TEXT,
    email      TEXT,
    role       TEXT NOT NULL DEFAULT 'user'
               CHECK(role IN ('user','authenticator','admin','finance')),
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_profiles_role ON profiles(role);

-- ============================================================
-- DOCUMENTS (intake orders)
-- ============================================================
CREATE TABLE IF NOT EXISTS documents (
    id                     TEXT PRIMARY KEY,
    user_id                TEXT NOT NULL REFERENCES profiles(id),
    filename               TEXT NOT NULL,
    pages                  INTEGER,
    total_cost             REAL,
    status                 TEXT NOT NULL DEFAULT 'pending'
                           CHECK(status IN ('pending','processing','completed','draft')),
    is_internal_use        INTEGER NOT NULL DEFAULT 0,
    payment_method         TEXT,
    file_url               TEXT,
    file_size              INTEGER,
    document_type          TEXT,
    source_language        TEXT,
    target_language        TEXT,
    client_name            TEXT,
    is_bank_statement      INTEGER NOT NULL DEFAULT 0,
    source_currency        TEXT,
    target_currency        TEXT,
    authenticated_by_name  TEXT,
    authenticated_by_email TEXT,
    authentication_date    TEXT,
    created_at             TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_documents_user ON documents(user_id);
CREATE INDEX IF NOT EXISTS idx_documents_filename ON documents(filename);
CREATE INDEX IF NOT EXISTS idx_documents_created ON documents(created_at);

-- ============================================================
-- DOCUMENTS TO BE VERIFIED (authentication pipeline)
-- ============================================================
CREATE TABLE IF NOT EXISTS documents_to_be_verified (
    id                     TEXT PRIMARY KEY,
    user_id                TEXT NOT NULL REFERENCES profiles(id),
    filename               TEXT NOT NULL,
    original_filename      TEXT,
    original_document_id   TEXT REFERENCES documents(id) ON DELETE SET NULL,
    status                 TEXT NOT NULL DEFAULT 'pending',
    pages                  INTEGER,
    total_cost             REAL,
    client_name            TEXT,
    source_language        TEXT,
    target_language        TEXT,
    translated_file_url    TEXT,
    authenticated_by_name  TEXT,
    authenticated_by_email TEXT,
    authentication_date    TEXT,
    created_at             TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_dtbv_user ON documents_to_be_verified(user_id);
CREATE INDEX IF NOT EXISTS idx_dtbv_original ON documents_to_be_verified(original_document_id);
CREATE INDEX IF NOT EXISTS idx_dtbv_filename ON documents_to_be_verified(filename);

-- ============================================================
-- TRANSLATED DOCUMENTS (deliverables)
-- ============================================================
CREATE TABLE IF NOT EXISTS translated_documents (
    id                     TEXT PRIMARY KEY,
    original_document_id   TEXT NOT NULL REFERENCES documents_to_be_verified(id) ON DELETE CASCADE,
    user_id                TEXT NOT NULL REFERENCES profiles(id),
    filename               TEXT NOT NULL,
    translated_file_url    TEXT,
    pages                  INTEGER,
    status                 TEXT NOT NULL DEFAULT 'completed',
    source_language        TEXT,
    target_language        TEXT,
    total_cost             REAL,
    is_authenticated       INTEGER NOT NULL DEFAULT 0,
    authenticated_by_name  TEXT,
    authenticated_by_email TEXT,
    authentication_date    TEXT,
    created_at             TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_translated_user ON translated_documents(user_id);
CREATE INDEX IF NOT EXISTS idx_translated_original ON translated_documents(original_document_id);

-- ============================================================
-- PAYMENTS
-- ============================================================
CREATE TABLE IF NOT EXISTS payments (
    id                      TEXT PRIMARY KEY,
    document_id             TEXT,
    user_id                 TEXT NOT NULL REFERENCES profiles(id),
    amount                  REAL NOT NULL,
    currency                TEXT NOT NULL DEFAULT 'usd',
    status                  TEXT NOT NULL DEFAULT 'pending_verification'
                            CHECK(status IN ('pending_verification','pending_manual_review',
                                             'completed','failed','refunded','cancelled')),
    payment_method          TEXT,
    payment_date            TEXT,
    receipt_url             TEXT,
    zelle_confirmation_code TEXT,
    zelle_verified_at       TEXT,
    zelle_verified_by       TEXT,
    created_at              TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    updated_at              TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_payments_document ON payments(document_id);
CREATE INDEX IF NOT EXISTS idx_payments_user ON payments(user_id);
CREATE INDEX IF NOT EXISTS idx_payments_status ON payments(status);
CREATE INDEX IF NOT EXISTS idx_payments_method ON payments(payment_method);

-- ============================================================
-- ACTION LOGS (append-only audit trail)
-- ============================================================
CREATE TABLE IF NOT EXISTS action_logs (
    id                 TEXT PRIMARY KEY,
    action_type        TEXT NOT NULL,
    action_description TEXT NOT NULL,
    entity_type        TEXT,
    entity_id          TEXT,
    affected_user_id   TEXT,
    performed_by       TEXT,
    performer_type     TEXT,
    metadata           TEXT,
    created_at         TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now'))
);

CREATE INDEX IF NOT EXISTS idx_action_logs_entity ON action_logs(entity_id);
CREATE INDEX IF NOT EXISTS idx_action_logs_type ON action_logs(action_type);

-- ============================================================
-- SIDE-EFFECT OUTBOX
-- ============================================================
CREATE TABLE IF NOT EXISTS side_effect_outbox (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    payment_id        TEXT NOT NULL REFERENCES payments(id) ON DELETE CASCADE,
    event_type        TEXT NOT NULL
                      CHECK(event_type IN ('translation_submission','payment_approved',
                                           'payment_rejected','authenticator_pending')),
    recipient_user_id TEXT,
    payload           TEXT NOT NULL,
    status            TEXT NOT NULL DEFAULT 'pending'
                      CHECK(status IN ('pending','delivered','failed')),
    attempts          INTEGER NOT NULL DEFAULT 0,
    last_error        TEXT,
    created_at        TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    updated_at        TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ','now')),
    delivered_at      TEXT
);

CREATE INDEX IF NOT EXISTS idx_outbox_status ON side_effect_outbox(status);
CREATE INDEX IF NOT EXISTS idx_outbox_payment ON side_effect_outbox(payment_id);
"""


# ALTER TABLE statements for databases created before a column joined SCHEMA_SQL
MIGRATIONS: list[str] = []


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    # Run migrations idempotently (ALTER TABLE fails if the column exists)
    for migration in MIGRATIONS:
        try:
            conn.execute(migration)
            conn.commit()
        except sqlite3.OperationalError:
            pass  # column already exists
    conn.close()

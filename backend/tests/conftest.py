import os
# Override DATABASE_URL before any app imports to avoid PostgreSQL driver requirement
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
# Keep the payment gateway disabled by default; tests opt in by monkeypatching settings.
os.environ["MVP_DISABLE_LEMON"] = "true"
os.environ["SUPER_ADMIN_KEY"] = "test-super-admin-key"
os.environ["NEW_BALANCE_STARTING_CREDITS"] = "0"
os.environ["CREDIT_BILLING_SCOPE"] = "school"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from doccredit.platform.database import Base, get_db
from doccredit.main import app
from doccredit.platform.middleware import _rate_limit_store
from doccredit.models import CreditPackage, DocumentType
from doccredit.services.credit_ledger_service import credit
from doccredit.shared.principal import BalanceOwner

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

SUPER_ADMIN_HEADERS = {"X-Super-Admin-Key": "test-super-admin-key"}


# Enable foreign key support for SQLite
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    yield db
    db.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def session_factory(db):
    """Fresh sessions for tests that need one session per thread."""
    return TestingSessionLocal


@pytest.fixture(scope="function")
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    # Clear in-memory rate limit state between tests to prevent 429 bleed-through
    _rate_limit_store.clear()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    _rate_limit_store.clear()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_document_type(db):
    counter = {"n": 0}

    def _make(
        *,
        name: str | None = None,
        category: str = "identity",
        credits_required: int = 2,
        is_active: bool = True,
        is_popular: bool = False,
        slug: str | None = None,
        description: str | None = None,
    ) -> DocumentType:
        counter["n"] += 1
        document_type = DocumentType(
            slug=slug or f"doc-{counter['n']}",
            name=name or f"Document {counter['n']}",
            category=category,
            description=description,
            credits_required=credits_required,
            is_active=is_active,
            is_popular=is_popular,
            usage_count=0,
        )
        db.add(document_type)
        db.commit()
        db.refresh(document_type)
        return document_type

    return _make


@pytest.fixture
def make_package(db):
    def _make(*, name: str = "Starter", credits: int = 100, price: str = "250", variant_id: str | None = None,
              is_active: bool = True) -> CreditPackage:
        package = CreditPackage(
            name=name,
            credits=credits,
            price=Decimal(price),
            currency="BDT",
            variant_id=variant_id,
            is_active=is_active,
        )
        db.add(package)
        db.commit()
        db.refresh(package)
        return package

    return _make


@pytest.fixture
def fund(db):
    """Give a balance owner credits through the ledger (the only writer)."""

    def _fund(owner: BalanceOwner, credits: int):
        return credit(db, owner, credits, reason="test funding")

    return _fund


def school_headers(school_id: str = "school-1", user_id: int | None = None) -> dict:
    headers = {"X-School-Id": school_id}
    if user_id is not None:
        headers["X-User-Id"] = str(user_id)
    return headers


@pytest.fixture
def headers():
    return school_headers

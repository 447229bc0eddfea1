"""
Shared fixtures: in-memory SQLite schema per test, factories, API client.
"""
import os

# Must be set before any ezapply import builds the engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from datetime import date, datetime
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ezapply.auth import create_access_token, hash_password
from ezapply.database import Base, get_db
from ezapply.models.db_models import (
    AffiliationDB, ApplicationDB, BasicInfoDB, CompanyDB, FinancialDB,
    TransactionType, UserAddressDB, UserDB, UserRole,
)
from ezapply.services.credits import CreditLedgerService
from ezapply.services.notifications import RecordingNotifier

PASSWORD = "password123"
PASSWORD_HASH = hash_password(PASSWORD)

# Fixed clock for lifecycle tests
T0 = datetime(2025, 3, 1, 9, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


# =============================================================================
# FACTORIES
# =============================================================================

def make_user(db, role=UserRole.CUSTOMER.value, email=None, profile=False, **fields) -> UserDB:
    """Persist a user; ``profile=True`` adds basic info, address, financial and an affiliation."""
    user_id = str(uuid4())
    fields.setdefault("session_version", 0)
    fields.setdefault("is_deactivated", False)
    fields.setdefault("email_verified_at", T0)
    user = UserDB(
        id=user_id,
        email=email or f"{user_id[:8]}@example.com",
        password_hash=PASSWORD_HASH,
        role=role,
        **fields,
    )
    db.add(user)
    if profile:
        db.add(BasicInfoDB(
            id=str(uuid4()), user_id=user_id, first_name="Maria", last_name="Santos",
            birth_date=date(1990, 5, 17), phone="09171234567",
        ))
        db.add(UserAddressDB(
            id=str(uuid4()), user_id=user_id, region_code="13", region_name="NCR",
            citymun_code="137404", citymun_name="Quezon City",
        ))
        db.add(FinancialDB(id=str(uuid4()), user_id=user_id, annual_income="500000", income_source="Salary"))
        db.add(AffiliationDB(id=str(uuid4()), user_id=user_id, institution="UP Diliman", position="Alumni"))
    db.commit()
    return user


def make_company(db, **fields) -> UserDB:
    user = make_user(db, role=UserRole.COMPANY.value, **fields)
    db.add(CompanyDB(id=str(uuid4()), user_id=user.id, company_name=f"Franchise {user.id[:4]}"))
    db.commit()
    return user


def make_application(db, applicant: UserDB, company: UserDB = None) -> ApplicationDB:
    company_row = company.company if company is not None else None
    application = ApplicationDB(
        id=str(uuid4()),
        user_id=applicant.id,
        company_id=company_row.id if company_row is not None else None,
        desired_location="Quezon City",
        status="pending",
    )
    db.add(application)
    db.commit()
    return application


def fund(db, user: UserDB, amount: int) -> None:
    CreditLedgerService(db).credit(user.id, amount, TransactionType.TOP_UP, description="test top-up")
    db.commit()


def auth_headers(user: UserDB) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


# =============================================================================
# API
# =============================================================================

@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient
    from ezapply.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()

"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database, so service code is free to
commit and tests never see each other's rows.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("NOTIFICATION_ENABLED", "false")

from typing import Generator  # noqa: E402

import pyotp  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.app.core.database import Base, get_db  # noqa: E402
from backend.app.core.security import get_password_hash  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.models.registry import RoleEnum, User  # noqa: E402
from backend.app.services import two_factor  # noqa: E402
from backend.app.services.auth import issue_access_token  # noqa: E402

PASSWORD = "Secret123"


# ─── DB session on a throwaway database ─────────────────────────────────────


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()

    yield session

    session.close()
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the test session."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Users ──────────────────────────────────────────────────────────────────


def make_user(
    db: Session,
    email: str = "alice@example.com",
    name: str = "Alice",
    password: str = PASSWORD,
    role: RoleEnum = RoleEnum.USER,
) -> User:
    user = User(
        email=email,
        name=name,
        hashed_password=get_password_hash(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def enable_two_factor(db: Session, user: User) -> tuple[str, list[str]]:
    """Run a full enrollment for *user*; returns ``(secret, backup_codes)``."""
    context = two_factor.EnrollmentContext({})
    two_factor.begin_enrollment(user, context)
    secret = context.get(user.id)
    assert secret is not None
    codes = two_factor.complete_enrollment(db, user, context, pyotp.TOTP(secret).now())
    return secret, codes


@pytest.fixture()
def user(db: Session) -> User:
    return make_user(db)


@pytest.fixture()
def admin_user(db: Session) -> User:
    return make_user(db, email="admin@example.com", name="Admin", role=RoleEnum.ADMIN)


@pytest.fixture()
def two_factor_user(db: Session) -> tuple[User, str, list[str]]:
    """A user with 2FA enabled, plus its TOTP secret and backup codes."""
    u = make_user(db, email="bob@example.com", name="Bob")
    secret, codes = enable_two_factor(db, u)
    return u, secret, codes


@pytest.fixture()
def user_token(user: User) -> str:
    return issue_access_token(user)


@pytest.fixture()
def admin_token(admin_user: User) -> str:
    return issue_access_token(admin_user)


def auth(token: str) -> dict[str, str]:
    """Return Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}

import os
import sys
from dataclasses import dataclass
from typing import Callable, Dict, Iterator

import pytest
import sqlalchemy as sa
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure the repository root is on sys.path so tests can import the package
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

os.environ.setdefault('ENVIRONMENT', 'test')
os.environ.setdefault('JWT_SECRET', 'test-jwt-secret')
os.environ.setdefault('LOG_LEVEL', 'WARNING')

from niraiva import db as db_module  # noqa: E402
from niraiva.auth import create_access_token, hash_password  # noqa: E402
from niraiva.db.models import Base, User  # noqa: E402
from niraiva.onboarding import complete_onboarding  # noqa: E402
from niraiva.schemas import OnboardingForm  # noqa: E402


@dataclass
class DatabaseContext:
    """Holds state for the ephemeral in-memory SQLite database."""

    engine: sa.engine.Engine
    session_factory: sessionmaker

    def make_session(self) -> Session:
        """Return a new SQLAlchemy session bound to the in-memory engine."""

        return self.session_factory()


@pytest.fixture(scope='function')
def in_memory_db() -> Iterator[DatabaseContext]:
    """Provide an isolated in-memory SQLite database for each test."""

    engine = sa.create_engine(
        'sqlite+pysqlite:///:memory:',
        future=True,
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    session_factory = db_module.configure_engine(engine)
    db_module.init_db(engine)
    try:
        yield DatabaseContext(engine=engine, session_factory=session_factory)
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture(scope='function')
def db_session(in_memory_db: DatabaseContext) -> Iterator[Session]:
    """Yield a SQLAlchemy session tied to the in-memory database."""

    session = in_memory_db.make_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope='function')
def api_client(in_memory_db: DatabaseContext) -> Iterator[TestClient]:
    """Yield a FastAPI test client bound to the in-memory database."""

    from niraiva import main

    with TestClient(main.app) as client:
        yield client


@pytest.fixture
def make_user(db_session: Session) -> Callable[..., User]:
    """Factory creating a signed-up (not yet onboarded) user."""

    counter = {'n': 0}

    def _make(
        email: str | None = None,
        password: str = 'secret123',
        role: str = 'patient',
        **extra,
    ) -> User:
        counter['n'] += 1
        user = User(
            email=email or f"user{counter['n']}@example.test",
            password_hash=hash_password(password),
            role=role,
            is_onboarded=False,
            **extra,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


def patient_form(**overrides) -> OnboardingForm:
    data = {
        'name': 'Asha Rao',
        'dob': '1990-04-12',
        'age': '34',
        'gender': 'female',
        'countryCode': '+91',
        'phone': '9000000001',
        'city': 'Chennai',
        'emergencyContactName': 'Ravi Rao',
        'emergencyContactCountryCode': '+91',
        'emergencyContactPhone': '9000000099',
        'bloodGroup': 'O+',
        'allergies': 'Penicillin',
    }
    data.update(overrides)
    return OnboardingForm.model_validate(data)


def doctor_form(**overrides) -> OnboardingForm:
    data = {
        'name': 'Dr. Meera Iyer',
        'countryCode': '+91',
        'phone': '9100000001',
        'specialization': 'Cardiology',
        'licenseNumber': 'TN-12345',
        'experience': '12',
        'clinicName': 'Heart Care',
    }
    data.update(overrides)
    return OnboardingForm.model_validate(data)


@pytest.fixture
def onboard(db_session: Session, make_user) -> Callable[..., User]:
    """Factory returning an onboarded user of the requested role."""

    counter = {'n': 0}

    def _onboard(role: str = 'patient', **overrides) -> User:
        counter['n'] += 1
        user = make_user(role=role)
        phone = overrides.pop('phone', f'98{counter["n"]:08d}')
        builder = doctor_form if role == 'doctor' else patient_form
        result = complete_onboarding(db_session, user.id, role, builder(phone=phone, **overrides))
        assert result['success'], result
        db_session.refresh(user)
        return user

    return _onboard


def auth_header(user: User) -> Dict[str, str]:
    return {'Authorization': f'Bearer {create_access_token(user)}'}

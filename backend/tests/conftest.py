"""
Shared fixtures: an isolated in-memory database per test, a progress engine
wired to recording collaborators, and valid payloads for every required step.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from villa_onboarding.database import init_db
from villa_onboarding.services.notification_service import NotificationService
from villa_onboarding.services.progress_engine import ProgressEngine
from villa_onboarding.services.progress_store import ProgressStore
from villa_onboarding.services.session_locks import SessionLockRegistry


VILLA_ID = "villa-001"

VALID_STAGE_DATA = {
    1: {
        "villa_name": "Villa Serenity",
        "villa_address": "Jl. Pantai Berawa 12",
        "villa_city": "Canggu",
        "bedrooms": "3",
        "bathrooms": 2,
        "max_guests": 6,
        "property_type": "villa",
    },
    2: {
        "owner_first_name": "Made",
        "owner_last_name": "Sari",
        "owner_email": "made.sari@example.com",
        "owner_phone": "+62 812 3456 7890",
        "owner_address": "Jl. Raya Ubud 5, Gianyar",
    },
    3: {
        "contract_start_date": "2026-01-01",
        "contract_end_date": "2027-01-01",
        "contract_type": "exclusive",
        "commission_rate": "20",
    },
    4: {
        "account_holder_name": "Made Sari",
        "bank_name": "Bank Central Asia",
        "iban": "DE89370400440532013000",
    },
    6: {
        "property_contract": "contract.pdf",
        "insurance_certificate": "insurance.pdf",
    },
    9: {
        "main_photo": "main.jpg",
    },
    10: {
        "final_review": True,
        "terms_accepted": True,
    },
}

REQUIRED_STEPS = (1, 2, 3, 4, 6, 9, 10)


class RecordingActivator:
    """Entity activator double that records calls and can fail a few times first."""

    def __init__(self, fail_times: int = 0):
        self.calls = []
        self.fail_times = fail_times

    def activate(self, villa_id: str) -> None:
        self.calls.append(villa_id)
        if len(self.calls) <= self.fail_times:
            raise RuntimeError("property service unavailable")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def session_factory():
    """Fresh in-memory database shared across connections for one test."""
    db_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=db_engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db_engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return ProgressStore(db)


@pytest.fixture
def activator():
    return RecordingActivator()


@pytest.fixture
def notifier():
    return NotificationService()


@pytest.fixture
def progress_engine(store, activator, notifier):
    return ProgressEngine(store, activator=activator, notifier=notifier, locks=SessionLockRegistry())


@pytest.fixture
def started(progress_engine):
    """An initialized villa session."""
    progress_engine.initialize(VILLA_ID, user_id="owner-1")
    return progress_engine


def complete_step(engine, step: int, actor: str = "owner-1"):
    return engine.update_stage(VILLA_ID, step, VALID_STAGE_DATA[step], completed=True, actor=actor)

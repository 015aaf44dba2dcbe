"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all AdherenceEngine tests.
Fixtures include database sessions, test clients, a frozen clock, sample
records and a mock notifier.
"""

import asyncio
import os
import sys
import threading
from datetime import datetime, date, time, timedelta
from typing import Generator
from unittest.mock import MagicMock, AsyncMock

# The app must not touch a real database during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from models import (
    Patient, Practitioner, Prescription, MedicationReminder, AdherenceLog,
    AdherenceStatus, ReminderFrequency, ReminderStatus
)
from api.deps import get_db as api_get_db
from app import app


# ==================== CLOCK ====================

class FrozenClock:
    """Clock that only moves when told to"""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    """Monday 2025-01-06 09:00"""
    return FrozenClock(datetime(2025, 1, 6, 9, 0))


@pytest.fixture
def mock_notifier():
    """Notifier whose send() records calls and succeeds"""
    notifier = MagicMock()
    notifier.send = AsyncMock(return_value=None)
    return notifier


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Enable foreign keys for SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    # Create all tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a test database session"""
    TestingSessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=test_engine
    )

    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def file_session_factory(tmp_path):
    """
    Session factory over a file-backed SQLite database.
    Unlike the in-memory engine, every session gets its own connection,
    so sessions in different threads really do race each other.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'adherence.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        echo=False
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)

    yield sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine
    )

    engine.dispose()


def run_in_threads(*jobs):
    """
    Run each coroutine function on its own thread and event loop.
    All threads are released together; returns results or raised exceptions in order.
    """
    barrier = threading.Barrier(len(jobs))
    results = [None] * len(jobs)

    def worker(index, job):
        barrier.wait()
        try:
            results[index] = asyncio.run(job())
        except Exception as e:
            results[index] = e

    threads = [threading.Thread(target=worker, args=(i, job)) for i, job in enumerate(jobs)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return results


@pytest.fixture(scope="function")
def client(db_session: Session, clock: FrozenClock, mock_notifier, monkeypatch) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database override and a frozen clock"""
    from services.reminder_service import reminder_service
    from services.adherence_service import adherence_service

    monkeypatch.setattr(reminder_service, "clock", clock)
    monkeypatch.setattr(reminder_service, "notifier", mock_notifier)
    monkeypatch.setattr(adherence_service, "clock", clock)

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[api_get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def test_practitioner(db_session: Session) -> Practitioner:
    practitioner = Practitioner(first_name="Grace", last_name="Okafor")
    db_session.add(practitioner)
    db_session.commit()
    db_session.refresh(practitioner)
    return practitioner


@pytest.fixture
def test_patient(db_session: Session) -> Patient:
    """Create and return a test patient"""
    patient = Patient(first_name="John", last_name="Doe")
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def other_patient(db_session: Session) -> Patient:
    patient = Patient(first_name="Jane", last_name="Smith")
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def test_prescription(db_session: Session, test_patient: Patient, test_practitioner: Practitioner) -> Prescription:
    """Dispensed twice-daily prescription without a reminder"""
    prescription = Prescription(
        patient_id=test_patient.id,
        practitioner_id=test_practitioner.id,
        medication_name="Metformin",
        dosage="500mg",
        frequency="Twice daily",
        duration="30 days",
        quantity=60,
        dispensed=True
    )
    db_session.add(prescription)
    db_session.commit()
    db_session.refresh(prescription)
    return prescription


@pytest.fixture
def undispensed_prescription(db_session: Session, test_patient: Patient, test_practitioner: Practitioner) -> Prescription:
    prescription = Prescription(
        patient_id=test_patient.id,
        practitioner_id=test_practitioner.id,
        medication_name="Lisinopril",
        dosage="10mg",
        frequency="Once daily",
        duration="30 days",
        quantity=30,
        dispensed=False
    )
    db_session.add(prescription)
    db_session.commit()
    db_session.refresh(prescription)
    return prescription


def seed_reminder(db_session: Session, start_date: date) -> MedicationReminder:
    """Patient, practitioner, dispensed prescription and an active 08:00/20:00 reminder"""
    practitioner = Practitioner(first_name="Grace", last_name="Okafor")
    patient = Patient(first_name="John", last_name="Doe")
    db_session.add_all([practitioner, patient])
    db_session.commit()

    prescription = Prescription(
        patient_id=patient.id,
        practitioner_id=practitioner.id,
        medication_name="Metformin",
        dosage="500mg",
        frequency="Twice daily",
        duration="30 days",
        quantity=60,
        dispensed=True
    )
    db_session.add(prescription)
    db_session.commit()

    return make_reminder(db_session, prescription, start_date=start_date)


def make_reminder(
    db_session: Session,
    prescription: Prescription,
    start_date: date,
    frequency: ReminderFrequency = ReminderFrequency.TWICE_DAILY,
    times_of_day=None,
    end_date=None,
    missed_window_minutes: int = 120,
    total_quantity=None,
    status: ReminderStatus = ReminderStatus.ACTIVE,
    notify_via=None
) -> MedicationReminder:
    """Insert a reminder directly, bypassing service validation"""
    reminder = MedicationReminder(
        prescription_id=prescription.id,
        patient_id=prescription.patient_id,
        frequency=frequency,
        times_of_day=times_of_day if times_of_day is not None else ["08:00", "20:00"],
        start_date=start_date,
        end_date=end_date,
        notify_via=notify_via or ["in_app"],
        missed_window_minutes=missed_window_minutes,
        total_quantity=total_quantity if total_quantity is not None else prescription.quantity,
        status=status
    )
    db_session.add(reminder)
    db_session.commit()
    db_session.refresh(reminder)
    return reminder


def make_log(
    db_session: Session,
    reminder: MedicationReminder,
    scheduled_at: datetime,
    status: AdherenceStatus = AdherenceStatus.PENDING
) -> AdherenceLog:
    log = AdherenceLog(
        reminder_id=reminder.id,
        patient_id=reminder.patient_id,
        scheduled_at=scheduled_at,
        status=status
    )
    db_session.add(log)
    db_session.commit()
    db_session.refresh(log)
    return log


@pytest.fixture
def test_reminder(db_session: Session, test_prescription: Prescription, clock: FrozenClock) -> MedicationReminder:
    """Active 08:00/20:00 reminder starting today, 60 units"""
    return make_reminder(
        db_session,
        test_prescription,
        start_date=clock.today(),
        end_date=clock.today() + timedelta(days=29)
    )


@pytest.fixture
def pending_log(db_session: Session, test_reminder: MedicationReminder, clock: FrozenClock) -> AdherenceLog:
    """Today's 08:00 dose, still pending"""
    return make_log(db_session, test_reminder, datetime.combine(clock.today(), time(8, 0)))


# ==================== MARKERS ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "api: mark test as an API test")
    config.addinivalue_line("markers", "database: mark test as requiring database")

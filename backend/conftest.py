import threading
import time
from datetime import datetime
from typing import List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.models.appointment import Appointment, AppointmentStatus
from app.reminders.dispatcher import DispatchGate
from app.reminders.engine import ReminderEngine
from app.reminders.repository import ReminderStore


class FakeChannel:
    """In-memory channel recording every send attempt."""

    def __init__(self, ready: bool = True):
        self.is_ready = ready
        self.sent: List[Tuple[str, str]] = []
        self.attempts: List[str] = []
        self.sent_at: List[float] = []
        self.fail_for = set()
        self.raise_for = set()
        self.stall_seconds = 0.0
        self.on_send = None
        self._lock = threading.Lock()

    def ready(self) -> bool:
        return self.is_ready

    def send(self, address: str, text: str, timeout: Optional[float] = None) -> bool:
        with self._lock:
            self.attempts.append(address)
        if self.stall_seconds:
            time.sleep(self.stall_seconds)
        if self.on_send is not None:
            self.on_send(address)
        if address in self.raise_for:
            raise RuntimeError("transport exploded")
        if address in self.fail_for:
            return False
        with self._lock:
            self.sent.append((address, text))
            self.sent_at.append(time.monotonic())
        return True

    @property
    def addresses(self) -> List[str]:
        return [address for address, _ in self.sent]


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def make_appointment(session_factory):
    counter = {"n": 0}

    def _make(scheduled_at: datetime, **overrides) -> Appointment:
        counter["n"] += 1
        fields = dict(
            client_name=f"Cliente {counter['n']}",
            client_phone=f"09800000{counter['n']:02d}",
            scheduled_at=scheduled_at,
            service="Manicure Tradicional",
            price=15,
            notes=None,
            status=AppointmentStatus.scheduled,
            reminder_24h_sent=False,
            reminder_2h_sent=False,
        )
        fields.update(overrides)
        db = session_factory()
        try:
            appointment = Appointment(**fields)
            db.add(appointment)
            db.commit()
            db.refresh(appointment)
            return appointment
        finally:
            db.close()

    return _make


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def gate(channel):
    gate = DispatchGate(channel, send_delay_seconds=0, send_timeout_seconds=2)
    yield gate
    gate.close()


@pytest.fixture
def store(session_factory):
    return ReminderStore(session_factory)


@pytest.fixture
def engine(store, gate):
    return ReminderEngine(store, gate, tolerance_minutes=15, tz_name="America/Guayaquil", studio_name="Nail Studio")

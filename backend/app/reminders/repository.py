import logging
import threading
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.models.appointment import Appointment, AppointmentStatus
from app.models.reminder_lease import ReminderLease
from .errors import StoreQueryFailure, StoreWriteFailure
from .windows import ReminderKind, ReminderWindow

logger = logging.getLogger(__name__)


def _flag(kind: ReminderKind):
    return getattr(Appointment, kind.flag_column)


def get_eligible_appointments(db: Session, kind: ReminderKind, window: ReminderWindow) -> List[Appointment]:
    flag = _flag(kind)
    stmt = (
        select(Appointment)
        .where(Appointment.status == AppointmentStatus.scheduled)
        .where(flag == False)  # noqa: E712
        .where(Appointment.scheduled_at >= window.start)
        .order_by(Appointment.scheduled_at.asc(), Appointment.id.asc())
    )
    if window.end_inclusive:
        stmt = stmt.where(Appointment.scheduled_at <= window.end)
    else:
        stmt = stmt.where(Appointment.scheduled_at < window.end)
    return list(db.execute(stmt).scalars())


def mark_reminder_sent(db: Session, appointment_id: int, kind: ReminderKind) -> bool:
    """Flip the sent flag for one kind. Returns False if it was already set or the row is gone."""
    flag = _flag(kind)
    result = db.execute(
        update(Appointment)
        .where(Appointment.id == appointment_id)
        .where(flag == False)  # noqa: E712
        .values({kind.flag_column: True})
    )
    db.commit()
    return result.rowcount == 1


def acquire_tick_lease(
    db: Session, kind: ReminderKind, holder: str, ttl_seconds: int, now: Optional[datetime] = None
) -> bool:
    """
    Take (or renew) the lease for one reminder kind.

    Succeeds when the lease is free, already ours, or expired. Every process
    that runs ticks goes through here, so two ticks of the same kind never
    overlap even when they live in different processes.
    """
    now = now or datetime.utcnow()
    expires_at = now + timedelta(seconds=ttl_seconds)
    result = db.execute(
        update(ReminderLease)
        .where(ReminderLease.kind == kind.value)
        .where(
            or_(
                ReminderLease.holder.is_(None),
                ReminderLease.holder == holder,
                ReminderLease.expires_at < now,
            )
        )
        .values(holder=holder, expires_at=expires_at)
    )
    if result.rowcount == 1:
        db.commit()
        return True
    db.rollback()

    if db.get(ReminderLease, kind.value) is not None:
        return False

    # First tick of this kind ever: create the row, racing anyone else doing the same
    db.add(ReminderLease(kind=kind.value, holder=holder, expires_at=expires_at))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def release_tick_lease(db: Session, kind: ReminderKind, holder: str) -> bool:
    result = db.execute(
        update(ReminderLease)
        .where(ReminderLease.kind == kind.value)
        .where(ReminderLease.holder == holder)
        .values(holder=None, expires_at=None)
    )
    db.commit()
    return result.rowcount == 1


class ReminderStore:
    """
    Appointment store as seen by the reminder engine.

    Reads use a short-lived session each. Writes are funnelled through one lock
    so that at most one flag update is in flight per process, and each update
    is committed before the call returns.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self._write_lock = threading.Lock()

    def query_eligible(self, kind: ReminderKind, window: ReminderWindow) -> List[Appointment]:
        db: Session = self.session_factory()
        try:
            rows = get_eligible_appointments(db, kind, window)
            # Detach so the engine can read attributes after the session closes
            db.expunge_all()
            return rows
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreQueryFailure(f"eligible query for {kind.value} failed: {e}") from e
        finally:
            db.close()

    def mark_reminder_sent(self, appointment_id: int, kind: ReminderKind) -> bool:
        with self._write_lock:
            db: Session = self.session_factory()
            try:
                updated = mark_reminder_sent(db, appointment_id, kind)
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreWriteFailure(
                    f"could not record {kind.value} reminder for appointment {appointment_id}: {e}"
                ) from e
            finally:
                db.close()
        if not updated:
            logger.warning(
                f"⚠️  [Reminders] {kind.value} flag for appointment {appointment_id} was already set or row is gone"
            )
        return updated

    def acquire_lease(self, kind: ReminderKind, holder: str, ttl_seconds: int) -> bool:
        with self._write_lock:
            db: Session = self.session_factory()
            try:
                return acquire_tick_lease(db, kind, holder, ttl_seconds)
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreWriteFailure(f"could not take the {kind.value} tick lease: {e}") from e
            finally:
                db.close()

    def release_lease(self, kind: ReminderKind, holder: str) -> bool:
        with self._write_lock:
            db: Session = self.session_factory()
            try:
                return release_tick_lease(db, kind, holder)
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreWriteFailure(f"could not release the {kind.value} tick lease: {e}") from e
            finally:
                db.close()

    def upcoming(self, after: datetime, limit: int = 5) -> List[Appointment]:
        """Next scheduled appointments from ``after`` on, for diagnostics."""
        db: Session = self.session_factory()
        try:
            stmt = (
                select(Appointment)
                .where(Appointment.status == AppointmentStatus.scheduled)
                .where(Appointment.scheduled_at >= after)
                .order_by(Appointment.scheduled_at.asc(), Appointment.id.asc())
                .limit(limit)
            )
            rows = list(db.execute(stmt).scalars())
            db.expunge_all()
            return rows
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreQueryFailure(f"upcoming appointments query failed: {e}") from e
        finally:
            db.close()

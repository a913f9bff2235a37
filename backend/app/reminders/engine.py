"""
Reminder engine: one tick selects the appointments inside a kind's window,
sends each one its reminder and records the result before moving on.
"""
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from app.utils.timezone import now_local
from .dispatcher import DispatchGate
from .errors import StoreQueryFailure, StoreWriteFailure
from .messages import render_reminder
from .metrics import (
    reminder_ticks_total,
    reminders_sent_total,
    reminders_failed_total,
    reminder_store_errors_total,
)
from .repository import ReminderStore
from .windows import ReminderKind, ReminderWindow, civil, compute_window

logger = logging.getLogger(__name__)


class TickOutcome(str, Enum):
    COMPLETED = "completed"
    EMPTY = "empty"
    SKIPPED_BUSY = "skipped_busy"
    SKIPPED_NOT_READY = "skipped_not_ready"
    ABORTED = "aborted"
    STOPPED = "stopped"


@dataclass
class TickResult:
    kind: ReminderKind
    outcome: TickOutcome
    window: Optional[ReminderWindow] = None
    selected: int = 0
    sent: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    # Sent but the flag could not be recorded; may be reminded again
    unrecorded: List[int] = field(default_factory=list)
    error: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "outcome": self.outcome.value,
            "window_start": self.window.start.isoformat() if self.window else None,
            "window_end": self.window.end.isoformat() if self.window else None,
            "selected": self.selected,
            "sent": list(self.sent),
            "failed": list(self.failed),
            "unrecorded": list(self.unrecorded),
            "error": self.error,
        }


class ReminderEngine:
    def __init__(
        self,
        store: ReminderStore,
        gate: DispatchGate,
        tolerance_minutes: int = 15,
        tz_name: Optional[str] = None,
        studio_name: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
        lease_ttl_seconds: int = 600,
    ):
        self.store = store
        self.gate = gate
        self.tolerance_minutes = tolerance_minutes
        self.tz_name = tz_name
        self.studio_name = studio_name
        self.clock = clock
        self.lease_ttl_seconds = lease_ttl_seconds
        # Identifies this engine in the shared lease table (worker, API, ...)
        self.holder = uuid.uuid4().hex[:12]
        self._locks: Dict[ReminderKind, threading.Lock] = {kind: threading.Lock() for kind in ReminderKind}

    @property
    def stopping(self) -> bool:
        return self.gate.stop_event.is_set()

    def request_stop(self) -> None:
        """Finish the appointment in flight, then leave any running tick."""
        logger.info("🛑 [Reminders] Stop requested - finishing current appointment")
        self.gate.stop_event.set()

    def is_running(self, kind: ReminderKind) -> bool:
        return self._locks[kind].locked()

    def _now(self) -> datetime:
        if self.clock is not None:
            return self.clock()
        return now_local(self.tz_name)

    def run_tick(self, kind: ReminderKind, now: Optional[datetime] = None) -> TickResult:
        lock = self._locks[kind]
        if not lock.acquire(blocking=False):
            logger.info(f"⏭️  [Reminders] {kind.value} tick still running - skipping this trigger")
            return self._finish(TickResult(kind=kind, outcome=TickOutcome.SKIPPED_BUSY))
        try:
            return self._finish(self._tick(kind, now))
        except Exception as e:
            # Nothing may escape a tick; the next one retries
            logger.exception(f"❌ [Reminders] {kind.value} tick crashed: {e!r}")
            return self._finish(TickResult(kind=kind, outcome=TickOutcome.ABORTED, error=repr(e)))
        finally:
            lock.release()

    def _finish(self, result: TickResult) -> TickResult:
        reminder_ticks_total.labels(kind=result.kind.value, outcome=result.outcome.value).inc()
        return result

    def _tick(self, kind: ReminderKind, now: Optional[datetime]) -> TickResult:
        if self.stopping:
            return TickResult(kind=kind, outcome=TickOutcome.STOPPED)
        if not self.gate.ready():
            logger.debug(f"[Reminders] Channel not ready - {kind.value} tick skipped")
            return TickResult(kind=kind, outcome=TickOutcome.SKIPPED_NOT_READY)

        try:
            leased = self.store.acquire_lease(kind, self.holder, self.lease_ttl_seconds)
        except StoreWriteFailure as e:
            logger.error(f"❌ [Reminders] {e}")
            reminder_store_errors_total.labels(operation="lease").inc()
            return TickResult(kind=kind, outcome=TickOutcome.ABORTED, error=str(e))
        if not leased:
            logger.info(f"⏭️  [Reminders] {kind.value} tick running in another process - skipping this trigger")
            return TickResult(kind=kind, outcome=TickOutcome.SKIPPED_BUSY)

        try:
            return self._run_leased(kind, now)
        finally:
            try:
                self.store.release_lease(kind, self.holder)
            except StoreWriteFailure as e:
                # Lease expires on its own after lease_ttl_seconds
                logger.error(f"❌ [Reminders] {e}")
                reminder_store_errors_total.labels(operation="lease").inc()

    def _run_leased(self, kind: ReminderKind, now: Optional[datetime]) -> TickResult:
        now = now or self._now()
        window = compute_window(kind, now, self.tolerance_minutes, self.tz_name)
        result = TickResult(kind=kind, outcome=TickOutcome.COMPLETED, window=window)
        logger.info(f"🔍 [Reminders] Checking {kind.value} reminders in {window}")

        try:
            appointments = self.store.query_eligible(kind, window)
        except StoreQueryFailure as e:
            logger.error(f"❌ [Reminders] {e}")
            reminder_store_errors_total.labels(operation="query").inc()
            result.outcome = TickOutcome.ABORTED
            result.error = str(e)
            return result

        result.selected = len(appointments)
        if not appointments:
            logger.info(f"[Reminders] No appointments due for the {kind.value} reminder")
            if kind is ReminderKind.H2 and logger.isEnabledFor(logging.DEBUG):
                self._log_upcoming(civil(now, self.tz_name))
            result.outcome = TickOutcome.EMPTY
            return result

        logger.info(f"📋 [Reminders] {len(appointments)} appointment(s) due for the {kind.value} reminder")
        for index, appointment in enumerate(appointments):
            if index > 0 and not self.gate.pace():
                result.outcome = TickOutcome.STOPPED
                break
            self._remind(kind, appointment, result)
            if self.stopping:
                result.outcome = TickOutcome.STOPPED
                break
            if index < len(appointments) - 1 and not self._renew_lease(kind):
                result.outcome = TickOutcome.ABORTED
                result.error = f"{kind.value} tick lease lost"
                break

        logger.info(
            f"🏁 [Reminders] {kind.value} tick done | sent={len(result.sent)} "
            f"failed={len(result.failed)} unrecorded={len(result.unrecorded)}"
        )
        return result

    def _remind(self, kind: ReminderKind, appointment, result: TickResult) -> None:
        message = render_reminder(kind, appointment, self.studio_name)
        if not self.gate.send(appointment.client_phone, message):
            logger.warning(
                f"❌ [Reminders] {kind.value} reminder to {appointment.client_name} "
                f"(appointment {appointment.id}) failed - will retry next tick"
            )
            reminders_failed_total.labels(kind=kind.value).inc()
            result.failed.append(appointment.id)
            return

        reminders_sent_total.labels(kind=kind.value).inc()
        result.sent.append(appointment.id)
        try:
            self.store.mark_reminder_sent(appointment.id, kind)
        except StoreWriteFailure as e:
            logger.error(f"❌ [Reminders] {e} - reminder may be sent again")
            reminder_store_errors_total.labels(operation="write").inc()
            result.unrecorded.append(appointment.id)
            return
        logger.info(f"✅ [Reminders] {kind.value} reminder sent to {appointment.client_name}")

    def _renew_lease(self, kind: ReminderKind) -> bool:
        try:
            renewed = self.store.acquire_lease(kind, self.holder, self.lease_ttl_seconds)
        except StoreWriteFailure as e:
            logger.error(f"❌ [Reminders] {e}")
            reminder_store_errors_total.labels(operation="lease").inc()
            return False
        if not renewed:
            logger.error(f"❌ [Reminders] {kind.value} tick lease taken over by another process - stopping this tick")
        return renewed

    def _log_upcoming(self, local_now: datetime, limit: int = 5) -> None:
        try:
            upcoming = self.store.upcoming(local_now, limit=limit)
        except StoreQueryFailure as e:
            logger.debug(f"[Reminders] Could not list upcoming appointments: {e}")
            return
        for appointment in upcoming:
            minutes = int((appointment.scheduled_at - local_now).total_seconds() // 60)
            logger.debug(
                f"   📅 {appointment.client_name} at {appointment.scheduled_at:%d/%m/%Y %H:%M} "
                f"(in {minutes} min, 24h={appointment.reminder_24h_sent}, 2h={appointment.reminder_2h_sent})"
            )

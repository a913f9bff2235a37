import logging
import threading
import time
from datetime import datetime

from app.models.appointment import Appointment, AppointmentStatus
from app.reminders.dispatcher import DispatchGate
from app.reminders.engine import ReminderEngine, TickOutcome
from app.reminders.errors import StoreQueryFailure, StoreWriteFailure
from app.reminders.windows import ReminderKind

NOW = datetime(2024, 6, 1, 8, 0, 0)


def _flags(session_factory, appointment_id):
    db = session_factory()
    try:
        row = db.get(Appointment, appointment_id)
        return row.reminder_24h_sent, row.reminder_2h_sent
    finally:
        db.close()


class SpyStore:
    def __init__(self, inner=None, fail_query=False, fail_write_for=()):
        self.inner = inner
        self.fail_query = fail_query
        self.fail_write_for = set(fail_write_for)
        self.queries = 0
        self.writes = []

    def query_eligible(self, kind, window):
        self.queries += 1
        if self.fail_query:
            raise StoreQueryFailure("database is locked")
        return self.inner.query_eligible(kind, window)

    def mark_reminder_sent(self, appointment_id, kind):
        self.writes.append((appointment_id, kind))
        if appointment_id in self.fail_write_for:
            raise StoreWriteFailure("disk full")
        return self.inner.mark_reminder_sent(appointment_id, kind)

    def acquire_lease(self, kind, holder, ttl_seconds):
        return self.inner.acquire_lease(kind, holder, ttl_seconds) if self.inner else True

    def release_lease(self, kind, holder):
        return self.inner.release_lease(kind, holder) if self.inner else True


def test_tick_sends_in_time_order_and_records_flags(engine, channel, session_factory, make_appointment):
    ten = make_appointment(datetime(2024, 6, 1, 10, 0), client_phone="0991111111")
    half_nine = make_appointment(datetime(2024, 6, 1, 9, 30), client_phone="0992222222")

    result = engine.run_tick(ReminderKind.H24, now=NOW)

    assert result.outcome is TickOutcome.COMPLETED
    assert channel.addresses == ["593992222222", "593991111111"]
    assert result.sent == [half_nine.id, ten.id]
    assert _flags(session_factory, ten.id) == (True, False)
    assert _flags(session_factory, half_nine.id) == (True, False)


def test_second_tick_does_not_resend(engine, channel, make_appointment):
    make_appointment(datetime(2024, 6, 1, 10, 0))

    engine.run_tick(ReminderKind.H24, now=NOW)
    result = engine.run_tick(ReminderKind.H24, now=datetime(2024, 6, 1, 8, 8))

    assert len(channel.sent) == 1
    assert result.outcome is TickOutcome.EMPTY


def test_kinds_are_tracked_independently(engine, channel, session_factory, make_appointment):
    appointment = make_appointment(datetime(2024, 6, 1, 10, 0))

    engine.run_tick(ReminderKind.H24, now=NOW)
    engine.run_tick(ReminderKind.H2, now=NOW)

    assert len(channel.sent) == 2
    assert _flags(session_factory, appointment.id) == (True, True)


def test_failed_send_does_not_abort_batch(engine, channel, session_factory, make_appointment):
    a = make_appointment(datetime(2024, 6, 1, 9, 0), client_phone="0991111111")
    b = make_appointment(datetime(2024, 6, 1, 9, 30), client_phone="0992222222")
    channel.fail_for.add("593991111111")

    result = engine.run_tick(ReminderKind.H24, now=NOW)

    assert result.failed == [a.id]
    assert result.sent == [b.id]
    assert _flags(session_factory, a.id) == (False, False)
    assert _flags(session_factory, b.id) == (True, False)

    # The failed one is picked up again next tick
    channel.fail_for.clear()
    retry = engine.run_tick(ReminderKind.H24, now=datetime(2024, 6, 1, 8, 8))
    assert retry.sent == [a.id]


def test_inter_send_delay_paces_the_batch(store, channel, make_appointment):
    for minute in (0, 10, 20, 30):
        make_appointment(datetime(2024, 6, 1, 9, minute))
    gate = DispatchGate(channel, send_delay_seconds=0.05)
    engine = ReminderEngine(store, gate)
    try:
        started = time.monotonic()
        result = engine.run_tick(ReminderKind.H24, now=NOW)
        elapsed = time.monotonic() - started
    finally:
        gate.close()

    assert len(result.sent) == 4
    assert elapsed >= 3 * 0.05
    gaps = [later - earlier for earlier, later in zip(channel.sent_at, channel.sent_at[1:])]
    assert all(gap >= 0.05 for gap in gaps)


def test_channel_not_ready_has_no_side_effects(store, gate, channel, make_appointment):
    make_appointment(datetime(2024, 6, 1, 10, 0))
    channel.is_ready = False
    spy = SpyStore(store)
    engine = ReminderEngine(spy, gate)

    result = engine.run_tick(ReminderKind.H24, now=NOW)

    assert result.outcome is TickOutcome.SKIPPED_NOT_READY
    assert spy.queries == 0
    assert spy.writes == []
    assert channel.attempts == []


def test_closed_appointments_are_never_reminded(engine, channel, make_appointment):
    make_appointment(datetime(2024, 6, 1, 10, 0), status=AppointmentStatus.completed)
    make_appointment(datetime(2024, 6, 1, 10, 0), status=AppointmentStatus.cancelled)

    result = engine.run_tick(ReminderKind.H24, now=NOW)

    assert result.outcome is TickOutcome.EMPTY
    assert channel.attempts == []


def test_query_failure_aborts_tick_without_raising(gate, channel):
    engine = ReminderEngine(SpyStore(fail_query=True), gate)

    result = engine.run_tick(ReminderKind.H2, now=NOW)

    assert result.outcome is TickOutcome.ABORTED
    assert "database is locked" in result.error
    assert channel.attempts == []


def test_write_failure_is_contained(store, gate, channel, make_appointment):
    a = make_appointment(datetime(2024, 6, 1, 9, 0))
    b = make_appointment(datetime(2024, 6, 1, 9, 30))
    engine = ReminderEngine(SpyStore(store, fail_write_for={a.id}), gate)

    result = engine.run_tick(ReminderKind.H24, now=NOW)

    assert result.sent == [a.id, b.id]
    assert result.unrecorded == [a.id]
    assert result.outcome is TickOutcome.COMPLETED


def test_overlapping_tick_of_same_kind_is_skipped(engine, channel, make_appointment):
    make_appointment(datetime(2024, 6, 1, 10, 0))
    engine._locks[ReminderKind.H24].acquire()
    try:
        busy = engine.run_tick(ReminderKind.H24, now=NOW)
        other_kind = engine.run_tick(ReminderKind.H2, now=NOW)
    finally:
        engine._locks[ReminderKind.H24].release()

    assert busy.outcome is TickOutcome.SKIPPED_BUSY
    assert other_kind.outcome is TickOutcome.COMPLETED
    assert len(channel.sent) == 1


def test_stop_finishes_current_appointment_then_exits(engine, channel, session_factory, make_appointment):
    first = make_appointment(datetime(2024, 6, 1, 9, 0))
    second = make_appointment(datetime(2024, 6, 1, 9, 30))
    channel.on_send = lambda address: engine.request_stop()

    result = engine.run_tick(ReminderKind.H24, now=NOW)

    assert result.outcome is TickOutcome.STOPPED
    assert result.sent == [first.id]
    assert _flags(session_factory, first.id) == (True, False)
    assert _flags(session_factory, second.id) == (False, False)
    assert engine.run_tick(ReminderKind.H24, now=NOW).outcome is TickOutcome.STOPPED


def test_reminder_text_carries_appointment_details(engine, channel, make_appointment):
    make_appointment(
        datetime(2024, 6, 1, 10, 0),
        client_name="María",
        service="Uñas Acrílicas",
        notes="Traer diseño",
    )

    engine.run_tick(ReminderKind.H2, now=NOW)

    _, text = channel.sent[0]
    assert "María" in text
    assert "01/06/2024 10:00" in text
    assert "Uñas Acrílicas" in text
    assert "Traer diseño" in text
    assert "2 horas" in text


def test_notes_line_omitted_when_empty(engine, channel, make_appointment):
    make_appointment(datetime(2024, 6, 1, 10, 0), notes="   ")

    engine.run_tick(ReminderKind.H24, now=NOW)

    _, text = channel.sent[0]
    assert "Notas" not in text


def test_engines_in_two_processes_never_run_the_same_kind_together(store, gate, channel, make_appointment):
    make_appointment(datetime(2024, 6, 1, 10, 0))
    channel.stall_seconds = 0.3
    worker = ReminderEngine(store, gate)
    api = ReminderEngine(store, gate)
    start = threading.Barrier(2)
    results = []

    def run(engine):
        start.wait()
        results.append(engine.run_tick(ReminderKind.H24, now=NOW))

    threads = [threading.Thread(target=run, args=(engine,)) for engine in (worker, api)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(channel.attempts) == 1
    assert sum(len(result.sent) for result in results) == 1
    assert TickOutcome.COMPLETED in {result.outcome for result in results}


def test_tick_skipped_while_another_process_holds_the_lease(engine, store, channel, make_appointment):
    make_appointment(datetime(2024, 6, 1, 10, 0))
    assert store.acquire_lease(ReminderKind.H24, "other-worker", 600)

    busy = engine.run_tick(ReminderKind.H24, now=NOW)
    other_kind = engine.run_tick(ReminderKind.H2, now=NOW)

    assert busy.outcome is TickOutcome.SKIPPED_BUSY
    assert other_kind.outcome is TickOutcome.COMPLETED
    assert channel.attempts == ["593980000001"]


def test_lease_is_released_after_each_tick(engine, store, make_appointment):
    make_appointment(datetime(2024, 6, 1, 10, 0))

    engine.run_tick(ReminderKind.H24, now=NOW)
    engine.run_tick(ReminderKind.H24, now=datetime(2024, 6, 1, 8, 5))

    assert store.acquire_lease(ReminderKind.H24, "other-worker", 600)


def test_empty_2h_tick_lists_upcoming_appointments(engine, make_appointment, caplog):
    make_appointment(datetime(2024, 6, 1, 15, 0), client_name="Lucía")

    with caplog.at_level(logging.DEBUG, logger="app.reminders.engine"):
        result = engine.run_tick(ReminderKind.H2, now=NOW)

    assert result.outcome is TickOutcome.EMPTY
    assert "Lucía at 01/06/2024 15:00 (in 420 min, 24h=False, 2h=False)" in caplog.text

import threading
import time

import pytest

from app.reminders.dispatcher import DispatchGate
from app.reminders.errors import SendFailure


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0987654321", "593987654321"),
        ("+593 98-765-4321", "593987654321"),
        ("987654321", "593987654321"),
        ("(098) 765 4321", "593987654321"),
    ],
)
def test_normalize_phone_to_international_form(gate, raw, expected):
    assert gate.normalize_phone(raw) == expected


def test_normalize_phone_appends_transport_suffix(channel):
    gate = DispatchGate(channel, address_suffix="@c.us")
    try:
        assert gate.normalize_phone("0987654321") == "593987654321@c.us"
        assert gate.normalize_phone("593987654321@c.us") == "593987654321@c.us"
    finally:
        gate.close()


def test_normalize_phone_rejects_input_without_digits(gate):
    with pytest.raises(ValueError):
        gate.normalize_phone("no phone")


def test_send_delivers_one_attempt(gate, channel):
    assert gate.send("0987654321", "hola") is True
    assert channel.sent == [("593987654321", "hola")]
    assert channel.attempts == ["593987654321"]


def test_send_returns_false_when_channel_not_ready(gate, channel):
    channel.is_ready = False
    assert gate.send("0987654321", "hola") is False
    assert channel.attempts == []


def test_send_swallows_channel_errors(gate, channel):
    channel.raise_for.add("593987654321")
    assert gate.send("0987654321", "hola") is False
    assert channel.attempts == ["593987654321"]


def test_send_returns_false_when_channel_refuses(gate, channel):
    channel.fail_for.add("593987654321")
    assert gate.send("0987654321", "hola") is False


def test_send_failure_exception_is_contained(gate, channel):
    def explode(address):
        raise SendFailure("HTTP 500")

    channel.on_send = explode
    assert gate.send("0987654321", "hola") is False


def test_send_invalid_phone_is_not_attempted(gate, channel):
    assert gate.send("---", "hola") is False
    assert channel.attempts == []


def test_stalled_send_is_bounded_by_timeout(channel):
    channel.stall_seconds = 0.5
    gate = DispatchGate(channel, send_timeout_seconds=0.1)
    try:
        started = time.monotonic()
        assert gate.send("0987654321", "hola") is False
        assert time.monotonic() - started < 0.45
    finally:
        gate.close()


def test_pace_waits_for_the_configured_delay(channel):
    gate = DispatchGate(channel, send_delay_seconds=0.05)
    try:
        started = time.monotonic()
        assert gate.pace() is True
        assert time.monotonic() - started >= 0.05
    finally:
        gate.close()


def test_pace_is_interrupted_by_stop(channel):
    stop = threading.Event()
    gate = DispatchGate(channel, send_delay_seconds=5, stop_event=stop)
    try:
        threading.Timer(0.05, stop.set).start()
        started = time.monotonic()
        assert gate.pace() is False
        assert time.monotonic() - started < 2
    finally:
        gate.close()


def test_ready_is_false_when_readiness_check_raises(channel):
    class Broken:
        def ready(self):
            raise RuntimeError("boom")

    gate = DispatchGate(Broken())
    try:
        assert gate.ready() is False
    finally:
        gate.close()

"""Failures raised inside the reminder subsystem.

None of these is allowed to reach the process boundary: the engine catches
them, logs them and lets the next tick retry.
"""


class ReminderError(Exception):
    pass


class ChannelNotReady(ReminderError):
    """The messaging channel cannot send right now."""


class SendFailure(ReminderError):
    """A single outbound message was not accepted by the channel."""


class StoreQueryFailure(ReminderError):
    """Selecting eligible appointments failed; the tick is abandoned."""


class StoreWriteFailure(ReminderError):
    """Recording a sent reminder failed; the appointment may be reminded again."""

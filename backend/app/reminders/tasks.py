import logging

from celery import shared_task

from .runtime import get_channel, get_engine
from .windows import ReminderKind

logger = logging.getLogger(__name__)


@shared_task(name="reminders.run_tick")
def run_tick_task(kind: str) -> dict:
    """Run one reminder tick for ``kind`` ("24h" or "2h") and report what happened."""
    result = get_engine().run_tick(ReminderKind(kind))
    return result.as_dict()


@shared_task(name="reminders.tick_24h")
def tick_24h_task() -> dict:
    return run_tick_task(ReminderKind.H24.value)


@shared_task(name="reminders.tick_2h")
def tick_2h_task() -> dict:
    return run_tick_task(ReminderKind.H2.value)


@shared_task(name="reminders.channel_heartbeat")
def channel_heartbeat_task() -> str:
    """Reconnect the channel when it dropped; the engine only reads its state."""
    channel = get_channel()
    if not channel.ready():
        logger.info("🔌 [Reminders] Channel not ready - attempting to reconnect")
        channel.connect()
    return channel.state.value

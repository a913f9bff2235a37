"""Process-wide wiring: one channel, one gate and one engine per process."""
import logging
from functools import lru_cache

from app.core.config import settings as core_settings
from app.db.session import SessionLocal
from .channel import WhatsAppCloudChannel
from .config import settings
from .dispatcher import DispatchGate
from .engine import ReminderEngine
from .repository import ReminderStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_channel() -> WhatsAppCloudChannel:
    channel = WhatsAppCloudChannel(
        token=settings.WHATSAPP_CLOUD_API_TOKEN,
        phone_number_id=settings.WHATSAPP_PHONE_NUMBER_ID,
        base_url=settings.WHATSAPP_API_BASE_URL,
        api_version=settings.WHATSAPP_API_VERSION,
    )
    if not channel.connect():
        logger.warning("⚠️  [Reminders] WhatsApp channel not connected - ticks will be skipped until it is")
    return channel


@lru_cache(maxsize=1)
def get_gate() -> DispatchGate:
    return DispatchGate(
        get_channel(),
        country_code=settings.PHONE_COUNTRY_CODE,
        trunk_prefix=settings.PHONE_TRUNK_PREFIX,
        address_suffix=settings.ADDRESS_SUFFIX,
        send_delay_seconds=settings.SEND_DELAY_SECONDS,
        send_timeout_seconds=settings.SEND_TIMEOUT_SECONDS,
    )


@lru_cache(maxsize=1)
def get_engine() -> ReminderEngine:
    return ReminderEngine(
        ReminderStore(SessionLocal),
        get_gate(),
        tolerance_minutes=settings.WINDOW_2H_TOLERANCE_MINUTES,
        tz_name=core_settings.DEFAULT_TIMEZONE,
        studio_name=core_settings.STUDIO_NAME,
        lease_ttl_seconds=settings.TICK_LEASE_SECONDS,
    )

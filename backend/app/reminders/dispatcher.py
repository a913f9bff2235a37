import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Optional

from .channel import MessagingChannel
from .errors import ChannelNotReady, SendFailure

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"[^\d]")


class DispatchGate:
    """
    Single entry point for outbound messages.

    Checks channel readiness, normalizes the recipient, bounds each send with a
    timeout and never raises: every failure comes back as ``False`` plus a log
    line. Pacing between consecutive sends is exposed through ``pace()``.
    """

    def __init__(
        self,
        channel: MessagingChannel,
        country_code: str = "593",
        trunk_prefix: str = "0",
        address_suffix: Optional[str] = None,
        send_delay_seconds: float = 2.0,
        send_timeout_seconds: float = 20.0,
        stop_event: Optional[threading.Event] = None,
    ):
        self.channel = channel
        self.country_code = country_code
        self.trunk_prefix = trunk_prefix
        self.address_suffix = address_suffix
        self.send_delay_seconds = send_delay_seconds
        self.send_timeout_seconds = send_timeout_seconds
        self.stop_event = stop_event or threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="dispatch")

    def ready(self) -> bool:
        try:
            return bool(self.channel.ready())
        except Exception as e:
            logger.error(f"❌ [Dispatch] Readiness check failed: {e!r}")
            return False

    def normalize_phone(self, raw_phone: str) -> str:
        """Turn a stored phone number into the address the channel expects."""
        if raw_phone is None:
            raise ValueError("phone number is missing")
        if "@" in raw_phone:
            return raw_phone
        digits = _NON_DIGITS.sub("", raw_phone)
        if not digits:
            raise ValueError(f"phone number {raw_phone!r} has no digits")
        if not digits.startswith(self.country_code):
            if self.trunk_prefix and digits.startswith(self.trunk_prefix):
                digits = digits[len(self.trunk_prefix):]
            digits = self.country_code + digits
        if self.address_suffix:
            digits += self.address_suffix
        return digits

    def send(self, raw_phone: str, message: str) -> bool:
        if not self.ready():
            logger.info("[Dispatch] Channel not ready - message not sent")
            return False
        try:
            address = self.normalize_phone(raw_phone)
        except ValueError as e:
            logger.warning(f"⚠️  [Dispatch] Invalid recipient: {e}")
            return False

        logger.info(f"[Dispatch] Sending message to {address}")
        future = self._executor.submit(self.channel.send, address, message, self.send_timeout_seconds)
        try:
            sent = future.result(timeout=self.send_timeout_seconds)
        except FutureTimeout:
            future.cancel()
            logger.error(f"❌ [Dispatch] Send to {address} timed out after {self.send_timeout_seconds}s")
            return False
        except ChannelNotReady as e:
            logger.info(f"[Dispatch] Channel dropped before send to {address}: {e}")
            return False
        except SendFailure as e:
            logger.error(f"❌ [Dispatch] Send to {address} failed: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ [Dispatch] Unexpected error sending to {address}: {e!r}")
            return False

        if not sent:
            logger.error(f"❌ [Dispatch] Channel refused message to {address}")
            return False
        logger.info(f"✅ [Dispatch] Message sent to {address}")
        return True

    def pace(self, seconds: Optional[float] = None) -> bool:
        """Wait between sends. Returns False when interrupted by shutdown."""
        delay = self.send_delay_seconds if seconds is None else seconds
        if delay <= 0:
            return not self.stop_event.is_set()
        return not self.stop_event.wait(delay)

    def close(self) -> None:
        self._executor.shutdown(wait=False)

"""
Outbound messaging channel.

The engine never owns the transport: it receives an object exposing ``ready()``
and ``send(address, text, timeout)``. Connection lifecycle is tracked by an
explicit state machine that only the channel itself advances.
"""
import logging
import threading
from enum import Enum
from typing import Optional, Protocol

import requests

from .errors import ChannelNotReady, SendFailure

logger = logging.getLogger(__name__)


class ChannelState(str, Enum):
    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    READY = "ready"


_ALLOWED_TRANSITIONS = {
    ChannelState.DISCONNECTED: {ChannelState.AUTHENTICATING},
    ChannelState.AUTHENTICATING: {ChannelState.READY, ChannelState.DISCONNECTED},
    ChannelState.READY: {ChannelState.DISCONNECTED},
}


class ChannelStateMachine:
    def __init__(self, initial: ChannelState = ChannelState.DISCONNECTED):
        self._state = initial
        self._lock = threading.Lock()

    @property
    def state(self) -> ChannelState:
        return self._state

    def is_ready(self) -> bool:
        return self._state is ChannelState.READY

    def transition(self, target: ChannelState, reason: str = "") -> None:
        with self._lock:
            if target is self._state:
                return
            if target not in _ALLOWED_TRANSITIONS[self._state]:
                raise ValueError(f"invalid channel transition {self._state.value} -> {target.value}")
            logger.info(f"📶 [Channel] {self._state.value} -> {target.value} {reason}".rstrip())
            self._state = target


class MessagingChannel(Protocol):
    def ready(self) -> bool:
        ...

    def send(self, address: str, text: str, timeout: Optional[float] = None) -> bool:
        ...


class WhatsAppCloudChannel:
    """WhatsApp Business Cloud API transport (text messages only)."""

    def __init__(
        self,
        token: Optional[str],
        phone_number_id: Optional[str],
        base_url: str = "https://graph.facebook.com",
        api_version: str = "v19.0",
        session: Optional[requests.Session] = None,
    ):
        self.token = token
        self.phone_number_id = phone_number_id
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.http = session or requests.Session()
        self.states = ChannelStateMachine()

    @property
    def state(self) -> ChannelState:
        return self.states.state

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    def connect(self, timeout: float = 10) -> bool:
        """Verify credentials against the phone-number resource and become ready."""
        if self.states.is_ready():
            return True
        if not self.token or not self.phone_number_id:
            logger.warning("⚠️  [Channel] WhatsApp credentials not configured - channel stays disconnected")
            return False
        self.states.transition(ChannelState.AUTHENTICATING)
        url = f"{self.base_url}/{self.api_version}/{self.phone_number_id}"
        try:
            response = self.http.get(url, headers=self._headers(), timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"❌ [Channel] Authentication failed: {e}")
            self.states.transition(ChannelState.DISCONNECTED, "(auth failure)")
            return False
        self.states.transition(ChannelState.READY)
        return True

    def disconnect(self, reason: str = "") -> None:
        if self.states.state is ChannelState.DISCONNECTED:
            return
        if self.states.state is ChannelState.READY:
            self.states.transition(ChannelState.DISCONNECTED, f"({reason})" if reason else "")
        else:
            self.states.transition(ChannelState.DISCONNECTED)

    def ready(self) -> bool:
        return self.states.is_ready()

    def send(self, address: str, text: str, timeout: Optional[float] = None) -> bool:
        if not self.ready():
            raise ChannelNotReady("WhatsApp channel is not connected")
        url = f"{self.base_url}/{self.api_version}/{self.phone_number_id}/messages"
        data = {
            "messaging_product": "whatsapp",
            "to": address,
            "type": "text",
            "text": {"body": text},
        }
        try:
            response = self.http.post(url, headers=self._headers(), json=data, timeout=timeout)
        except requests.RequestException as e:
            raise SendFailure(f"request to WhatsApp failed: {e}") from e
        if response.status_code in (401, 403):
            # Token revoked or expired; stop advertising readiness until reconnected
            self.disconnect(f"HTTP {response.status_code}")
            raise SendFailure(f"WhatsApp rejected credentials (HTTP {response.status_code})")
        if response.status_code >= 400:
            raise SendFailure(f"WhatsApp returned HTTP {response.status_code}: {response.text[:200]}")
        logger.debug(f"[Channel] WhatsApp response: {response.text[:200]}")
        return True

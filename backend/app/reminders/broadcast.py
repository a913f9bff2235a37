"""
Ad-hoc outbound messaging (promotions) sent through the dispatch gate.

Broadcasts never read or write reminder flags.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from .dispatcher import DispatchGate
from .errors import ChannelNotReady
from .messages import render_promotion
from .metrics import broadcast_messages_total

logger = logging.getLogger(__name__)


@dataclass
class BroadcastResult:
    total: int = 0
    sent: int = 0
    failed: int = 0
    interrupted: bool = False


def broadcast_promotion(
    gate: DispatchGate,
    contacts: Iterable[Tuple[str, str]],
    message: str,
    delay_seconds: float = 3.0,
    studio_name: Optional[str] = None,
) -> BroadcastResult:
    """Send ``message`` to every (phone, name) contact, pacing between sends."""
    if not message or not message.strip():
        raise ValueError("message cannot be empty")
    if not gate.ready():
        raise ChannelNotReady("WhatsApp channel is not connected")

    contacts = list(contacts)
    result = BroadcastResult(total=len(contacts))
    logger.info(f"📣 [Broadcast] Sending promotion to {len(contacts)} client(s)")
    for index, (phone, name) in enumerate(contacts):
        if index > 0 and not gate.pace(delay_seconds):
            result.interrupted = True
            break
        if gate.send(phone, render_promotion(name, message.strip(), studio_name)):
            result.sent += 1
            broadcast_messages_total.labels(result="sent").inc()
        else:
            result.failed += 1
            broadcast_messages_total.labels(result="failed").inc()
            logger.warning(f"❌ [Broadcast] Could not reach {name}")
    logger.info(f"🏁 [Broadcast] {result.sent} of {result.total} promotion(s) sent")
    return result

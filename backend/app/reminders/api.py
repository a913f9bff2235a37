from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import verify_api_key_dependency
from app.crud.appointment import appointment as appointment_crud
from app.db.session import get_db
from .broadcast import broadcast_promotion
from .config import settings
from .dispatcher import DispatchGate
from .engine import ReminderEngine
from .errors import ChannelNotReady
from .runtime import get_engine, get_gate
from .schemas import BroadcastRead, BroadcastRequest, ChannelStatus, DirectMessage, SendResult, TickRead
from .windows import ReminderKind


router = APIRouter(dependencies=[Depends(verify_api_key_dependency)])


def engine_dependency() -> ReminderEngine:
    return get_engine()


def gate_dependency() -> DispatchGate:
    return get_gate()


@router.post("/ticks/{kind}", response_model=TickRead)
def run_tick_endpoint(kind: ReminderKind, engine: ReminderEngine = Depends(engine_dependency)):
    """Run one reminder tick now, outside the beat schedule."""
    return TickRead(**engine.run_tick(kind).as_dict())


@router.get("/channel", response_model=ChannelStatus)
def channel_status_endpoint(gate: DispatchGate = Depends(gate_dependency)):
    state = getattr(gate.channel, "state", None)
    connected = gate.ready()
    if state is None:
        state_value = "ready" if connected else "disconnected"
    else:
        state_value = getattr(state, "value", str(state))
    return ChannelStatus(state=state_value, connected=connected)


@router.post("/test-message", response_model=SendResult)
def send_test_message_endpoint(payload: DirectMessage, gate: DispatchGate = Depends(gate_dependency)):
    if not gate.ready():
        raise HTTPException(status_code=400, detail="WhatsApp is not connected")
    sent = gate.send(payload.phone, payload.message)
    return SendResult(success=sent, message="Message sent" if sent else "Message could not be sent")


@router.post("/broadcast", response_model=BroadcastRead)
def broadcast_endpoint(
    payload: BroadcastRequest,
    gate: DispatchGate = Depends(gate_dependency),
    db: Session = Depends(get_db),
):
    if not payload.message.strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    contacts = appointment_crud.list_client_contacts(db)
    try:
        result = broadcast_promotion(gate, contacts, payload.message, delay_seconds=settings.BROADCAST_DELAY_SECONDS)
    except ChannelNotReady:
        raise HTTPException(status_code=400, detail="WhatsApp is not connected")
    return BroadcastRead(total=result.total, sent=result.sent, failed=result.failed, interrupted=result.interrupted)

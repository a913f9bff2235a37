from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class TickRead(BaseModel):
    """Outcome of one reminder tick"""
    kind: str
    outcome: str
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    selected: int = 0
    sent: List[int] = Field(default_factory=list)
    failed: List[int] = Field(default_factory=list)
    unrecorded: List[int] = Field(default_factory=list)
    error: Optional[str] = None


class ChannelStatus(BaseModel):
    state: str
    connected: bool


class DirectMessage(BaseModel):
    phone: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)


class SendResult(BaseModel):
    success: bool
    message: str


class BroadcastRequest(BaseModel):
    message: str = Field(..., min_length=1)


class BroadcastRead(BaseModel):
    total: int
    sent: int
    failed: int
    interrupted: bool = False

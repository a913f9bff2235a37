from typing import Optional
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.appointment import AppointmentStatus


# Shared properties
class AppointmentBase(BaseModel):
    client_name: str = Field(..., min_length=1)
    client_phone: str = Field(..., min_length=1)
    scheduled_at: datetime  # civil time in the studio timezone
    service: str = Field(..., min_length=1)
    price: Decimal = Decimal("0")
    notes: Optional[str] = None


# Properties to receive on appointment creation
class AppointmentCreate(AppointmentBase):
    @field_validator("scheduled_at")
    @classmethod
    def drop_seconds_fraction(cls, v: datetime) -> datetime:
        return v.replace(microsecond=0)


# Properties to receive on a status change
class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    price: Optional[Decimal] = None


# Properties to return to client
class Appointment(AppointmentBase):
    id: int
    status: AppointmentStatus
    reminder_24h_sent: bool
    reminder_2h_sent: bool
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

import enum
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Numeric, Enum, Index
from app.db.base import Base
from datetime import datetime


class AppointmentStatus(str, enum.Enum):
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)

    client_name = Column(String, nullable=False)
    client_phone = Column(String, nullable=False)  # digits only

    # Civil time in settings.DEFAULT_TIMEZONE, stored without tzinfo
    scheduled_at = Column(DateTime, nullable=False, index=True)

    service = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    status = Column(
        Enum(AppointmentStatus, native_enum=False, length=16),
        nullable=False,
        default=AppointmentStatus.scheduled,
    )

    reminder_24h_sent = Column(Boolean, nullable=False, default=False)
    reminder_2h_sent = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_appointments_status_scheduled", "status", "scheduled_at"),
    )

    def __repr__(self):
        return (
            f"<Appointment(id={self.id}, client_name='{self.client_name}', "
            f"scheduled_at={self.scheduled_at}, status='{self.status}')>"
        )

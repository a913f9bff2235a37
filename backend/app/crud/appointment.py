import re
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import select
from datetime import datetime

from app.models.appointment import Appointment, AppointmentStatus
from app.schemas.appointment import AppointmentCreate, AppointmentStatusUpdate
from app.utils.timezone import to_local_naive


def digits_only(phone: str) -> str:
    return re.sub(r"[^\d]", "", phone or "")


class CRUDAppointment:
    def __init__(self, model=Appointment):
        self.model = model

    def create(self, db: Session, *, obj_in: AppointmentCreate) -> Appointment:
        phone = digits_only(obj_in.client_phone)
        if not phone:
            raise ValueError("client_phone must contain digits")
        db_obj = self.model(
            client_name=obj_in.client_name.strip(),
            client_phone=phone,
            scheduled_at=to_local_naive(obj_in.scheduled_at),
            service=obj_in.service,
            price=obj_in.price,
            notes=obj_in.notes,
            status=AppointmentStatus.scheduled,
            reminder_24h_sent=False,
            reminder_2h_sent=False,
        )
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def get(self, db: Session, appointment_id: int) -> Optional[Appointment]:
        return db.get(self.model, appointment_id)

    def update_status(
        self, db: Session, *, appointment_id: int, obj_in: AppointmentStatusUpdate
    ) -> Optional[Appointment]:
        db_obj = self.get(db, appointment_id)
        if not db_obj:
            return None
        # Completed and cancelled are final
        if db_obj.status is not AppointmentStatus.scheduled:
            raise ValueError(f"appointment {appointment_id} is already {db_obj.status.value}")
        db_obj.status = obj_in.status
        if obj_in.status is AppointmentStatus.completed:
            db_obj.completed_at = datetime.utcnow()
            if obj_in.price is not None:
                db_obj.price = obj_in.price
        db.commit()
        db.refresh(db_obj)
        return db_obj

    def delete(self, db: Session, *, appointment_id: int) -> bool:
        db_obj = self.get(db, appointment_id)
        if not db_obj:
            return False
        db.delete(db_obj)
        db.commit()
        return True

    def list_client_contacts(self, db: Session) -> List[Tuple[str, str]]:
        """Distinct (phone, name) pairs, ordered by client name."""
        stmt = (
            select(self.model.client_phone, self.model.client_name)
            .where(self.model.client_phone.isnot(None))
            .distinct()
            .order_by(self.model.client_name)
        )
        return [(phone, name) for phone, name in db.execute(stmt).all()]


appointment = CRUDAppointment(Appointment)

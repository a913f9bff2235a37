from .appointment import Appointment, AppointmentCreate, AppointmentStatusUpdate

__all__ = ["Appointment", "AppointmentCreate", "AppointmentStatusUpdate"]

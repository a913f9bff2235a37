from .appointment import Appointment, AppointmentStatus
from .reminder_lease import ReminderLease

__all__ = ["Appointment", "AppointmentStatus", "ReminderLease"]

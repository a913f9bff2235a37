from app.core.config import settings as core_settings
from app.models.appointment import Appointment
from app.utils.timezone import format_civil
from .windows import ReminderKind


def _notes_line(appointment: Appointment) -> str:
    notes = (appointment.notes or "").strip()
    return f"📝 *Notas:* {notes}\n" if notes else ""


def render_reminder(kind: ReminderKind, appointment: Appointment, studio_name: str = None) -> str:
    studio = studio_name or core_settings.STUDIO_NAME
    when = format_civil(appointment.scheduled_at)
    if kind is ReminderKind.H24:
        return (
            "💅✨ *RECORDATORIO DE CITA* ✨💅\n\n"
            f"¡Hola {appointment.client_name}! 👋\n\n"
            "🗓️ Te recordamos que tienes una cita en las próximas 24 horas:\n\n"
            f"📅 *Fecha:* {when}\n"
            f"💅🏻 *Servicio:* {appointment.service}\n"
            f"{_notes_line(appointment)}\n"
            "⏱️ Hay 15 minutos de tolerancia; pasado ese tiempo la cita se cancela.\n"
            "⚠️ Si no puedes asistir, avísanos con tiempo para reprogramar 🙏\n\n"
            f"_{studio}_ 🌸"
        )
    return (
        "⏰ *¡TU CITA ES HOY!* ⏰\n\n"
        f"Hola {appointment.client_name}! 💕\n\n"
        "Tu cita es en aproximadamente 2 horas.\n\n"
        f"⏰ *Hora:* {when}\n"
        f"💅 *Servicio:* {appointment.service}\n"
        f"{_notes_line(appointment)}\n"
        "📍 No olvides llegar puntual.\n"
        "⚠️ Si no puedes asistir, avísanos con tiempo 🙏\n\n"
        f"_{studio}_ 🌸"
    )


def render_promotion(client_name: str, message: str, studio_name: str = None) -> str:
    studio = studio_name or core_settings.STUDIO_NAME
    return f"Hola {client_name}! 👋\n\n{message}\n\n_{studio}_ 🌸"

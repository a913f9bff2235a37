"""
Citas Reminders Application Package

Appointment bookings plus the WhatsApp reminder engine that polls them.
"""

"""Appointment reminder engine (windows, dispatch gate, Celery ticks, API).

Celery beat triggers one tick per reminder kind; each tick selects scheduled
appointments inside the kind's window, sends a WhatsApp reminder through the
dispatch gate and records the sent flag before moving on.
"""

from prometheus_client import Counter


reminder_ticks_total = Counter(
    "reminder_ticks_total",
    "Total reminder ticks by kind and outcome",
    ["kind", "outcome"],
)

reminders_sent_total = Counter(
    "reminders_sent_total",
    "Total reminders delivered to the channel",
    ["kind"],
)

reminders_failed_total = Counter(
    "reminders_failed_total",
    "Total reminder sends that failed",
    ["kind"],
)

reminder_store_errors_total = Counter(
    "reminder_store_errors_total",
    "Total appointment store errors seen by the reminder engine",
    ["operation"],
)

broadcast_messages_total = Counter(
    "broadcast_messages_total",
    "Total promotional messages by result",
    ["result"],
)

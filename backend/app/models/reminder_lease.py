from sqlalchemy import Column, String, DateTime
from app.db.base import Base


class ReminderLease(Base):
    """One row per reminder kind; whoever holds it is the only process running that tick."""

    __tablename__ = "reminder_leases"

    kind = Column(String(8), primary_key=True)
    holder = Column(String(64), nullable=True)
    expires_at = Column(DateTime, nullable=True)  # UTC

    def __repr__(self):
        return f"<ReminderLease(kind='{self.kind}', holder='{self.holder}', expires_at={self.expires_at})>"

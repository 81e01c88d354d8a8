"""Audit persistence model: the append-only notification log."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from notifyhub.common.db import Base


class NotificationLog(Base):
    """One event in a notification's history.

    Rows are appended on creation (one per channel) and on every status
    transition; they are never updated, only purged once `ttl` has passed.
    """

    __tablename__ = "notification_logs"

    log_id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    notification_id: Mapped[str] = mapped_column(String, index=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    channel: Mapped[str] = mapped_column(String)
    message: Mapped[str] = mapped_column(String)
    receiver_email: Mapped[str | None] = mapped_column(String, nullable=True)
    subject: Mapped[str | None] = mapped_column(String, nullable=True)
    slack: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String)
    # Expiry as epoch seconds.
    ttl: Mapped[int] = mapped_column(Integer, index=True)

"""Realtime persistence models (active notification projection + live connections).

The projection is keyed by `(user_id, created_at)` for per-user listing and
carries a secondary index on `notification_id` for status updates by id.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from notifyhub.common.db import Base
from notifyhub.common.state_machine import PENDING


class ActiveNotification(Base):
    """An unresolved notification a client currently sees."""

    __tablename__ = "active_notifications"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), primary_key=True)
    notification_id: Mapped[str] = mapped_column(String, index=True)
    message: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default=PENDING)
    # Compare-and-swap guard for concurrent transitions on the same row.
    state_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class LiveConnection(Base):
    """Websocket connection handle registered for one user."""

    __tablename__ = "live_connections"

    connection_id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    connected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

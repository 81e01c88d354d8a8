"""Connection registry: which live connection can reach a user."""

from datetime import datetime, timezone

from sqlalchemy import delete, select

from notifyhub.common.logging import logger
from notifyhub.services.realtime.models import LiveConnection


class ConnectionRegistry:
    """Maps connection ids to users, with reverse lookup by user."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def lookup(self, user_id: str) -> str | None:
        """Return one live connection id for `user_id`, or None.

        Only the most recent connection is used; a user with several open
        sessions is not pushed to on all of them.
        """

        with self.session_factory() as db:
            return db.execute(
                select(LiveConnection.connection_id)
                .where(LiveConnection.user_id == user_id)
                .order_by(LiveConnection.connected_at.desc())
                .limit(1)
            ).scalar_one_or_none()

    def register(self, connection_id: str, user_id: str) -> None:
        with self.session_factory() as db:
            db.merge(
                LiveConnection(
                    connection_id=connection_id,
                    user_id=user_id,
                    connected_at=datetime.now(timezone.utc),
                )
            )
            db.commit()
        logger.info("connection registered connection_id=%s user_id=%s", connection_id, user_id)

    def unregister(self, connection_id: str) -> None:
        with self.session_factory() as db:
            db.execute(delete(LiveConnection).where(LiveConnection.connection_id == connection_id))
            db.commit()
        logger.info("connection unregistered connection_id=%s", connection_id)

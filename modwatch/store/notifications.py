"""Persisted update notifications."""
import logging
from datetime import datetime

from modwatch.parse.models import Notification
from modwatch.store.database import Database

logger = logging.getLogger(__name__)

RECENT_LIMIT = 100


def _row_to_notification(row) -> Notification:
    return Notification(
        id=row["id"],
        mod_id=row["mod_id"],
        site_id=row["site_id"],
        title=row["title"],
        message=row["message"],
        read=bool(row["read"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class NotificationStore:
    def __init__(self, db: Database):
        self.db = db

    async def add(self, notification: Notification) -> Notification:
        notification_id = await self.db.execute(
            "INSERT INTO notifications (mod_id, site_id, title, message, read, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (
                notification.mod_id,
                notification.site_id,
                notification.title,
                notification.message,
                1 if notification.read else 0,
                notification.created_at.isoformat(),
            ),
            context=f"add notification for mod {notification.mod_id}",
        )
        return notification.model_copy(update={"id": notification_id})

    async def recent(self, unread_only: bool = False) -> list[Notification]:
        """Latest notifications, newest first."""
        where = "WHERE read = 0 " if unread_only else ""
        rows = await self.db.fetch_all(
            f"SELECT * FROM notifications {where}ORDER BY created_at DESC, id DESC LIMIT ?",
            (RECENT_LIMIT,),
            context="list notifications",
        )
        return [_row_to_notification(row) for row in rows]

    async def mark_read(self, notification_id: int) -> bool:
        changed = await self.db.execute(
            "UPDATE notifications SET read = 1 WHERE id = ?",
            (notification_id,),
            context=f"mark notification {notification_id} read",
        )
        return bool(changed)

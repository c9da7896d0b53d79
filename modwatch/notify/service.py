"""Turn change events into notifications."""
import logging
from abc import ABC, abstractmethod

from modwatch.parse.models import ChangeEvent, Notification
from modwatch.store.notifications import NotificationStore

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Receives change events. Delivery is best effort."""

    @abstractmethod
    async def notify(self, event: ChangeEvent) -> None:
        pass


def build_notification(event: ChangeEvent) -> Notification:
    """Title and message shown for a mod update."""
    if event.old_version and event.new_version:
        message = f"Version changed: {event.old_version} → {event.new_version}"
    else:
        message = "Mod updated"
    if event.title:
        message = f"{event.title}: {message}"
    return Notification(
        mod_id=event.mod_id,
        site_id=event.site_id,
        title="Mod update",
        message=message,
    )


class NotificationService(Notifier):
    """Stores a notification per event and logs it. Desktop delivery is left to the shell."""

    def __init__(self, store: NotificationStore):
        self.store = store

    async def notify(self, event: ChangeEvent) -> None:
        notification = await self.store.add(build_notification(event))
        logger.info(f"[notify] {notification.title}: {notification.message} ({event.url})")

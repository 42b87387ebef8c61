"""
Notification channels.

The back office decides *when* staff should be told about something; a
channel decides *how*. Channels raise ``NotificationError`` when delivery
fails and never retry on their own.
"""

from abc import ABC, abstractmethod

from backoffice.core.exceptions import NotificationError
from backoffice.core.logging import get_logger

logger = get_logger(__name__)


class NotificationChannel(ABC):
    """Destination for staff notifications."""

    name: str = "channel"

    @abstractmethod
    async def send(self, message: str) -> None:
        """
        Deliver a rendered message.

        Raises:
            NotificationError: If the message could not be delivered
        """


class LogNotificationChannel(NotificationChannel):
    """Writes notifications to the application log."""

    name = "log"

    async def send(self, message: str) -> None:
        if not message.strip():
            raise NotificationError("Refusing to send an empty notification")
        logger.info("Staff notification", channel=self.name, message=message)

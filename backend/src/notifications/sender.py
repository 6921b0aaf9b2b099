"""NotificationSender port and shipped transports.

Components never talk to email/in-app delivery directly. They build a
NotificationRequest and hand it to the injected sender. A failed notification
is logged and never fails the operation that emitted it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import Any, Optional

import httpx


logger = logging.getLogger(__name__)


@dataclass
class NotificationRequest:
    user_id: str
    type: str
    title: str
    message: str
    channels: list[str] = field(default_factory=lambda: ["email", "in_app"])
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["userId"] = payload.pop("user_id")
        return payload


class NotificationSender(ABC):
    """Port for the notification service."""

    @abstractmethod
    def send(self, request: NotificationRequest) -> None:
        """Deliver one notification. Raises on transport failure."""
        pass


class LoggingNotificationSender(NotificationSender):
    """Default sender for development: writes notifications to the log."""

    def send(self, request: NotificationRequest) -> None:
        logger.info(
            f"Notification {request.type}: {request.title}",
            extra={"seller_id": request.user_id, "operation": "notify"},
        )


class HttpNotificationSender(NotificationSender):
    """POSTs notifications to NOTIFICATION_SERVICE_URL."""

    def __init__(self, http_client: httpx.Client, url: str, timeout: float = 5.0):
        self.http_client = http_client
        self.url = url
        self.timeout = timeout

    def send(self, request: NotificationRequest) -> None:
        response = self.http_client.post(self.url, json=request.to_payload(), timeout=self.timeout)
        response.raise_for_status()


def send_safely(sender: Optional[NotificationSender], request: NotificationRequest) -> bool:
    """Send and swallow transport failures with a warning.

    Returns:
        True if the sender accepted the notification
    """
    if sender is None:
        return False
    try:
        sender.send(request)
        return True
    except Exception:
        logger.warning(
            f"Failed to send {request.type} notification",
            exc_info=True,
            extra={"seller_id": request.user_id, "operation": "notify"},
        )
        return False

"""Notification requests emitted to the seller (external NotificationSender collaborator)."""

from .sender import (
    NotificationRequest,
    NotificationSender,
    LoggingNotificationSender,
    HttpNotificationSender,
    send_safely,
)

__all__ = [
    "NotificationRequest",
    "NotificationSender",
    "LoggingNotificationSender",
    "HttpNotificationSender",
    "send_safely",
]

"""
Notifications

Outbound, one-way messages from the core to the chat sink.
"""

from .models import Notification, NotificationType
from .queue import NotificationDispatcher, NotificationQueue, NotificationSink
from .sinks import LoggingNotificationSink, TelegramNotificationSink

__all__ = [
    # Models
    "Notification",
    "NotificationType",
    # Queue
    "NotificationQueue",
    "NotificationDispatcher",
    "NotificationSink",
    # Sinks
    "LoggingNotificationSink",
    "TelegramNotificationSink",
]

"""Outbound notifications to the chat bot service."""

from src.modules.notification.service import NotificationService, NotificationType

__all__ = ["NotificationService", "NotificationType"]

"""Engine event notifications."""

from .hub import LoggingNotifier, NotificationHub, Notifier

__all__ = ["LoggingNotifier", "NotificationHub", "Notifier"]

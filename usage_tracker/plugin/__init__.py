"""
Host plugin for Usage Tracker.

Connects host lifecycle events and usage commands to the usage ledger.
"""

from .tracker import Notification, NotificationVariant, UsageTracker

__all__ = ["Notification", "NotificationVariant", "UsageTracker"]

"""
Tools Package
Pure scheduling helpers and the notification boundary
"""

from .recurrence import (
    RecurrenceRuleEngine,
    recurrence_engine,
    generate_occurrences,
    parse_time_of_day,
    normalize_times_of_day,
    format_time_of_day
)

from .notification_service import (
    NotificationScheduler,
    LoggingNotificationScheduler,
    ScheduledNotification,
    NotificationType,
    DeliveryMode
)


__all__ = [
    # Recurrence
    "RecurrenceRuleEngine",
    "recurrence_engine",
    "generate_occurrences",
    "parse_time_of_day",
    "normalize_times_of_day",
    "format_time_of_day",

    # Notifications
    "NotificationScheduler",
    "LoggingNotificationScheduler",
    "ScheduledNotification",
    "NotificationType",
    "DeliveryMode"
]

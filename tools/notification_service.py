"""
Notification Scheduler Tool
Boundary to the device alarm / notification layer
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


logger = logging.getLogger(__name__)


class DeliveryMode(str, Enum):
    """How urgently an obligation is announced"""
    STANDARD = "standard"
    FULL_SCREEN = "full_screen"   # heavy sleeper alarm


class NotificationType(str, Enum):
    """Types of notifications"""
    MEDICATION_REMINDER = "medication_reminder"
    SUPPLEMENT_REMINDER = "supplement_reminder"
    APPOINTMENT_REMINDER = "appointment_reminder"
    REFILL_REMINDER = "refill_reminder"


NOTIFICATION_TYPE_BY_EVENT = {
    "medication_due": NotificationType.MEDICATION_REMINDER,
    "supplement_due": NotificationType.SUPPLEMENT_REMINDER,
    "appointment": NotificationType.APPOINTMENT_REMINDER,
}


@dataclass
class ScheduledNotification:
    """One device alarm bound to a calendar event"""
    event_id: str
    profile_id: str
    notification_type: NotificationType
    title: str
    fire_at: datetime
    mode: DeliveryMode = DeliveryMode.STANDARD
    data: Dict[str, Any] = field(default_factory=dict)


class NotificationScheduler(ABC):
    """
    Contract for the OS alarm layer.

    Exactly one alarm per pending event; the alarm must be cancelled when the
    event is completed, skipped or deleted.
    """

    @abstractmethod
    async def schedule_event(self, event) -> Optional[ScheduledNotification]:
        """Register the alarm for a pending event"""
        pass

    @abstractmethod
    async def cancel_event(self, event_id: str) -> bool:
        """Remove the alarm of an event; False when none was registered"""
        pass

    @abstractmethod
    async def notify_refill(self, source) -> None:
        """Announce that a source has reached its refill threshold"""
        pass


class LoggingNotificationScheduler(NotificationScheduler):
    """
    In-process scheduler that keeps the pending alarm table in memory and
    logs every change. Used by the API server and in tests; a device build
    replaces it with the platform bridge.
    """

    def __init__(self, mode: DeliveryMode = DeliveryMode.STANDARD):
        self.mode = mode
        self._scheduled: Dict[str, ScheduledNotification] = {}
        self.refill_alerts: List[str] = []

    async def schedule_event(self, event) -> Optional[ScheduledNotification]:
        notification_type = NOTIFICATION_TYPE_BY_EVENT.get(event.event_type)
        if notification_type is None:
            return None

        notification = ScheduledNotification(
            event_id=event.id,
            profile_id=event.profile_id,
            notification_type=notification_type,
            title=event.title,
            fire_at=event.scheduled_time,
            mode=self.mode,
            data={"eventId": event.id, "sourceId": event.source_id},
        )
        self._scheduled[event.id] = notification
        logger.debug(f"Scheduled {notification_type.value} for event {event.id} at {event.scheduled_time}")
        return notification

    async def cancel_event(self, event_id: str) -> bool:
        removed = self._scheduled.pop(event_id, None)
        if removed:
            logger.debug(f"Cancelled notification for event {event_id}")
        return removed is not None

    async def notify_refill(self, source) -> None:
        self.refill_alerts.append(source.id)
        logger.info(
            f"Refill needed for {source.kind.value} {source.id}: "
            f"{source.current_quantity} left (threshold {source.refill_threshold})"
        )

    def scheduled(self) -> List[ScheduledNotification]:
        """Pending alarms ordered by fire time"""
        return sorted(self._scheduled.values(), key=lambda n: n.fire_at)

    def is_scheduled(self, event_id: str) -> bool:
        return event_id in self._scheduled

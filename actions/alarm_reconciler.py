"""
Alarm Delivery Reconciler
Resolves which obligation an alarm fired for
"""

import asyncio
import logging
from typing import Callable, Optional
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import models
from models import CalendarEventStatus
from exceptions import LoadTimeoutError, NoActiveAlarmError
from services.calendar_store import CalendarEventStore, classify_status
from services.profile_store import ProfileStore


logger = logging.getLogger(__name__)


class ResolutionPath(str, Enum):
    """How the alarm target was found"""
    DIRECT = "direct"
    OVERDUE = "overdue"
    UPCOMING = "upcoming"


@dataclass
class AlarmResolution:
    """The event to show on the alarm screen"""
    event: models.CalendarEvent
    path: ResolutionPath
    effective_status: CalendarEventStatus


class AlarmDeliveryReconciler:
    """
    Alarm-time lookup with a fallback search.

    The OS layer may fire without a payload, or with an event id that a
    regeneration has since removed. The lookup then falls back to the
    earliest overdue pending event of the profile, then to the next
    upcoming one. The whole lookup is bounded so the alarm screen never
    hangs on a slow store.
    """

    def __init__(
        self,
        calendar_store: CalendarEventStore,
        profile_store: ProfileStore,
        clock: Callable[[], datetime] = datetime.now,
        timeout_seconds: float = 5.0
    ):
        self.calendar_store = calendar_store
        self.profile_store = profile_store
        self.clock = clock
        self.timeout_seconds = timeout_seconds

    async def resolve(
        self,
        event_id: Optional[str] = None,
        profile_id: Optional[str] = None
    ) -> AlarmResolution:
        """
        Resolve the alarm target

        Raises:
            NoActiveAlarmError: nothing pending for the profile
            LoadTimeoutError: lookup exceeded timeout_seconds
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._lookup, event_id, profile_id),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Alarm lookup timed out after {self.timeout_seconds}s (event_id={event_id})")
            raise LoadTimeoutError(
                f"Could not load the alarm within {self.timeout_seconds} seconds",
                detail={"event_id": event_id},
            ) from e

    def _lookup(self, event_id: Optional[str], profile_id: Optional[str]) -> AlarmResolution:
        now = self.clock()

        if event_id:
            event = self.calendar_store.get_by_id(event_id)
            if event is not None and event.status == CalendarEventStatus.PENDING.value:
                return AlarmResolution(event, ResolutionPath.DIRECT, classify_status(event, now))
            if event is not None:
                profile_id = profile_id or event.profile_id
            logger.warning(f"Alarm event {event_id} is missing or settled, using fallback search")

        if profile_id is None:
            profile = self.profile_store.get_primary()
            if profile is None:
                raise NoActiveAlarmError("No profile to resolve the alarm for")
            profile_id = profile.id

        overdue = self.calendar_store.get_overdue(profile_id, now)
        if overdue:
            event = overdue[0]
            return AlarmResolution(event, ResolutionPath.OVERDUE, classify_status(event, now))

        upcoming = self.calendar_store.get_upcoming(profile_id, 1, now)
        if upcoming:
            event = upcoming[0]
            return AlarmResolution(event, ResolutionPath.UPCOMING, classify_status(event, now))

        raise NoActiveAlarmError(
            f"No pending obligation for profile {profile_id}",
            detail={"profile_id": profile_id, "event_id": event_id},
        )

"""
Adherence Service
Read-only adherence aggregation over calendar events and history
"""

import logging
import math
from typing import Callable, Dict, List, Optional
from datetime import datetime, date, timedelta
from collections import Counter, defaultdict

import models
from models import CalendarEventStatus, HistoryStatus
from config import scheduling_config
from domain import AdherenceDataPoint, CareInsight, DashboardStats
from services.calendar_store import CalendarEventStore, classify_status
from services.history_store import HistoryStore
from services.source_store import SourceStore
from tools.recurrence import RecurrenceRuleEngine


logger = logging.getLogger(__name__)

# Event types that count as obligations for adherence
DUE_EVENT_TYPES = [
    models.CalendarEventType.MEDICATION_DUE,
    models.CalendarEventType.SUPPLEMENT_DUE,
]


def adherence_percentage(completed: int, missed: int) -> int:
    """round(completed / (completed + missed) * 100), 0 when nothing was due"""
    denominator = completed + missed
    if denominator == 0:
        return 0
    # Half-up rounding
    return math.floor(completed / denominator * 100 + 0.5)


def day_start(value: datetime) -> datetime:
    return datetime.combine(value.date(), datetime.min.time())


def period_of_day(hour: int) -> str:
    period = scheduling_config.DAY_PERIODS[0][1]
    for start_hour, name in scheduling_config.DAY_PERIODS:
        if hour >= start_hour:
            period = name
    return period


class AdherenceCalculator:
    """
    Adherence statistics.

    Nothing is cached: every call recomputes from committed rows, and every
    status goes through classify_status so a past pending obligation counts
    as missed everywhere.
    """

    def __init__(
        self,
        calendar_store: CalendarEventStore,
        history_store: HistoryStore,
        source_store: SourceStore,
        engine: RecurrenceRuleEngine,
        clock: Callable[[], datetime] = datetime.now,
        window_days: int = 7,
        history_days: int = 30,
        upcoming_hours: int = 4,
        streak_max_lookback_days: int = 365
    ):
        self.calendar_store = calendar_store
        self.history_store = history_store
        self.source_store = source_store
        self.engine = engine
        self.clock = clock
        self.window_days = window_days
        self.history_days = history_days
        self.upcoming_hours = upcoming_hours
        self.streak_max_lookback_days = streak_max_lookback_days

    def _statuses_by_day(
        self,
        profile_id: str,
        start: datetime,
        end: datetime,
        now: datetime
    ) -> Dict[date, List[CalendarEventStatus]]:
        events = self.calendar_store.get_in_range(profile_id, start, end, event_types=DUE_EVENT_TYPES)
        by_day: Dict[date, List[CalendarEventStatus]] = defaultdict(list)
        for event in events:
            by_day[event.scheduled_time.date()].append(classify_status(event, now))
        return by_day

    async def get_dashboard_stats(self, profile_id: str) -> DashboardStats:
        """
        Trailing-window adherence for the home screen

        The window covers today and the previous window_days - 1 days.
        """
        now = self.clock()
        today = day_start(now)
        window_start = today - timedelta(days=self.window_days - 1)
        window_end = today + timedelta(days=1)

        stats = self.calendar_store.get_stats(
            profile_id, window_start, window_end, now, event_types=DUE_EVENT_TYPES
        )
        today_stats = self.calendar_store.get_stats(
            profile_id, today, window_end, now, event_types=DUE_EVENT_TYPES
        )
        upcoming = self.calendar_store.get_upcoming(
            profile_id, None, now,
            until=now + timedelta(hours=self.upcoming_hours),
            event_types=DUE_EVENT_TYPES
        )

        return DashboardStats(
            profile_id=profile_id,
            adherence_percentage=adherence_percentage(stats["completed"], stats["missed"]),
            completed_count=stats["completed"],
            missed_count=stats["missed"],
            skipped_count=stats["skipped"],
            current_streak=await self.streak_days(profile_id),
            upcoming_count=len(upcoming),
            today_completed=today_stats["completed"],
            today_total=today_stats["total"],
            window_start=window_start,
            window_end=window_end,
        )

    async def streak_days(self, profile_id: str) -> int:
        """
        Count consecutive good days walking back from today.

        A day counts when it had no due obligations or when each one was
        completed or skipped. The walk stops at the first day with a missed
        obligation, before the profile's first obligation, or after
        streak_max_lookback_days. Today is not counted while it still has
        obligations ahead.
        """
        first = self.calendar_store.get_first_scheduled_time(profile_id)
        if first is None:
            return 0

        now = self.clock()
        today = now.date()
        earliest = max(first.date(), today - timedelta(days=self.streak_max_lookback_days - 1))
        by_day = self._statuses_by_day(
            profile_id,
            datetime.combine(earliest, datetime.min.time()),
            day_start(now) + timedelta(days=1),
            now
        )

        streak = 0
        day = today
        while day >= earliest:
            statuses = by_day.get(day, [])
            if CalendarEventStatus.MISSED in statuses:
                break
            if CalendarEventStatus.PENDING not in statuses:
                streak += 1
            day -= timedelta(days=1)

        return streak

    async def get_adherence_history(self, profile_id: str, days: Optional[int] = None) -> List[AdherenceDataPoint]:
        """One data point per day for the last `days` days, oldest first"""
        days = days or self.history_days
        now = self.clock()
        first_day = now.date() - timedelta(days=days - 1)
        by_day = self._statuses_by_day(
            profile_id,
            datetime.combine(first_day, datetime.min.time()),
            day_start(now) + timedelta(days=1),
            now
        )

        points = []
        for offset in range(days):
            day = first_day + timedelta(days=offset)
            statuses = by_day.get(day, [])
            points.append(AdherenceDataPoint(
                date=day,
                percentage=adherence_percentage(
                    statuses.count(CalendarEventStatus.COMPLETED),
                    statuses.count(CalendarEventStatus.MISSED)
                )
            ))
        return points

    # ==================== INSIGHTS ====================

    async def get_care_insights(self, profile_id: str) -> List[CareInsight]:
        """Dashboard insight cards, the consistency score always first"""
        insights = [self._consistency_insight(profile_id)]

        for builder in (self._trend_insight, self._most_missed_insight,
                        self._best_time_insight, self._refill_insight):
            insight = builder(profile_id)
            if insight is not None:
                insights.append(insight)

        return insights

    def _consistency_insight(self, profile_id: str) -> CareInsight:
        """70% adherence, 30% timing accuracy over the lookback window"""
        now = self.clock()
        start = now - timedelta(days=scheduling_config.CONSISTENCY_LOOKBACK_DAYS)
        history = self.history_store.get_by_profile_range(profile_id, start, now)

        if not history:
            return CareInsight(
                type="consistency",
                value="N/A",
                description="Not enough history to score consistency yet",
                score=0,
            )

        taken = [h for h in history if h.status == HistoryStatus.TAKEN.value and h.actual_time]
        deviation = sum(
            min(abs((h.actual_time - h.scheduled_time).total_seconds()) / 60,
                scheduling_config.CONSISTENCY_MAX_DEVIATION_MINUTES)
            for h in taken
        )
        avg_deviation = deviation / len(taken) if taken else 0
        timing_factor = max(0.0, 100 - avg_deviation * scheduling_config.CONSISTENCY_DEVIATION_DECAY)
        adherence_rate = len(taken) / len(history) * 100

        score = math.floor(
            adherence_rate * scheduling_config.CONSISTENCY_ADHERENCE_WEIGHT
            + timing_factor * scheduling_config.CONSISTENCY_TIMING_WEIGHT
            + 0.5
        )
        excellent = score > scheduling_config.CONSISTENCY_EXCELLENT_SCORE

        return CareInsight(
            type="consistency",
            value=f"{score}/100",
            description="Excellent consistency" if excellent else "Taking doses closer to schedule will raise your score",
            score=score,
            trend="up" if excellent else "neutral",
            params={"average_deviation_minutes": round(avg_deviation, 1), "entries": len(history)},
        )

    def _trend_insight(self, profile_id: str) -> Optional[CareInsight]:
        """Week-over-week adherence change"""
        now = self.clock()
        this_week_end = day_start(now) + timedelta(days=1)
        this_week_start = this_week_end - timedelta(days=7)
        last_week_start = this_week_start - timedelta(days=7)

        current = self.calendar_store.get_stats(
            profile_id, this_week_start, this_week_end, now, event_types=DUE_EVENT_TYPES
        )
        previous = self.calendar_store.get_stats(
            profile_id, last_week_start, this_week_start, now, event_types=DUE_EVENT_TYPES
        )
        if previous["completed"] + previous["missed"] == 0:
            return None

        current_pct = adherence_percentage(current["completed"], current["missed"])
        previous_pct = adherence_percentage(previous["completed"], previous["missed"])
        delta = current_pct - previous_pct

        if delta >= scheduling_config.TREND_DELTA_PERCENT:
            trend, description = "up", "Adherence improved compared to last week"
        elif delta <= -scheduling_config.TREND_DELTA_PERCENT:
            trend, description = "down", "Adherence dropped compared to last week"
        else:
            trend, description = "neutral", "Adherence is steady compared to last week"

        return CareInsight(
            type="trend",
            value=f"{delta:+d}%",
            description=description,
            score=current_pct,
            trend=trend,
            params={"current": current_pct, "previous": previous_pct},
        )

    def _most_missed_insight(self, profile_id: str) -> Optional[CareInsight]:
        now = self.clock()
        start = day_start(now) - timedelta(days=scheduling_config.CONSISTENCY_LOOKBACK_DAYS)
        events = self.calendar_store.get_in_range(profile_id, start, now, event_types=DUE_EVENT_TYPES)

        missed = Counter(
            e.source_id for e in events
            if classify_status(e, now) is CalendarEventStatus.MISSED
        )
        if not missed:
            return None

        source_id, count = missed.most_common(1)[0]
        source = self.source_store.get(source_id)
        if source is None:
            return None

        return CareInsight(
            type="most_missed",
            value=source.display_title,
            description=f"Missed {count} times in the last {scheduling_config.CONSISTENCY_LOOKBACK_DAYS} days",
            trend="down",
            params={"source_id": source_id, "count": count},
        )

    def _best_time_insight(self, profile_id: str) -> Optional[CareInsight]:
        by_hour = self.history_store.taken_by_hour(profile_id)
        if not by_hour:
            return None

        hour = max(sorted(by_hour), key=lambda h: by_hour[h])
        period = period_of_day(hour)

        return CareInsight(
            type="best_time",
            value=f"{hour % 12 or 12}:00 {'AM' if hour < 12 else 'PM'}",
            description=f"You are most consistent in the {period}",
            trend="up",
            params={"hour": hour, "period": period, "count": by_hour[hour]},
        )

    def _refill_insight(self, profile_id: str) -> Optional[CareInsight]:
        """Days until the first active source runs out"""
        soonest = None
        for source in self.source_store.list_by_profile(profile_id, active_only=True):
            if source.current_quantity is None:
                continue
            per_day = self.engine.expected_daily_doses(source.rule, source.time_of_day)
            if per_day <= 0:
                continue
            days_left = math.floor(source.current_quantity / per_day)
            if soonest is None or days_left < soonest[0]:
                soonest = (days_left, source)

        if soonest is None:
            return None

        days_left, source = soonest
        return CareInsight(
            type="refill",
            value=f"{days_left} days",
            description=f"{source.display_title} will run out first",
            trend="down" if days_left < scheduling_config.REFILL_WARNING_DAYS else "neutral",
            params={"source_id": source.id, "days_left": days_left},
        )

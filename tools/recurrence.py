"""
Recurrence Rule Engine
Expands a recurrence rule and a list of times of day into concrete instants
"""

import logging
from typing import Any, Iterable, Iterator, List, Optional, Union
from datetime import datetime, date, time, timedelta

from domain import Daily, Weekly, Custom, Monthly, parse_rule
from exceptions import ValidationError


logger = logging.getLogger(__name__)


Rule = Union[Daily, Weekly, Custom, Monthly]


def parse_time_of_day(val: Any) -> time:
    """Convert a time object or an 'HH:MM' / 'HH:MM:SS' string to datetime.time.

    Raises ValidationError if it cannot be converted.
    """
    if isinstance(val, time):
        return val.replace(second=0, microsecond=0, tzinfo=None)
    if isinstance(val, str):
        for fmt in ("%H:%M", "%H:%M:%S"):
            try:
                return datetime.strptime(val.strip(), fmt).time().replace(second=0)
            except ValueError:
                continue
        raise ValidationError(f"Cannot parse time of day: {val!r}")
    raise ValidationError(f"Unsupported time of day type: {type(val).__name__}")


def normalize_times_of_day(values: Optional[Iterable[Any]]) -> List[time]:
    """Parse, dedupe and sort a time-of-day list"""
    if not values:
        return []
    if isinstance(values, (str, time)):
        raise ValidationError("time_of_day must be a list of 'HH:MM' strings")
    return sorted({parse_time_of_day(v) for v in values})


def format_time_of_day(values: Iterable[Any]) -> List[str]:
    """Canonical 'HH:MM' strings for storage"""
    return [t.strftime("%H:%M") for t in normalize_times_of_day(values)]


def _iter_days(first: date, last: date) -> Iterator[date]:
    day = first
    while day <= last:
        yield day
        day += timedelta(days=1)


class RecurrenceRuleEngine:
    """
    Stateless expansion of recurrence rules.

    Anchored rules (weekly without explicit days, custom intervals, monthly)
    count their period from `anchor`, normally the date the source was
    created, so the phase does not drift as the horizon window slides
    forward. Without an anchor the window start is used.
    """

    def generate(
        self,
        rule: Any,
        time_of_day: Optional[Iterable[Any]],
        window_start: datetime,
        window_end: datetime,
        anchor: Optional[Union[date, datetime]] = None
    ) -> List[datetime]:
        """
        Expand a rule into instants within [window_start, window_end)

        Args:
            rule: RecurrenceRule instance or its JSON form
            time_of_day: "HH:MM" strings or time objects
            window_start: Inclusive window start
            window_end: Exclusive window end
            anchor: Date the recurrence is counted from

        Returns:
            Sorted list of unique instants
        """
        rule = parse_rule(rule)
        times = normalize_times_of_day(time_of_day)

        if not times or window_end <= window_start:
            return []
        if isinstance(rule, Custom) and rule.is_as_needed:
            return []

        if isinstance(anchor, datetime):
            anchor = anchor.date()
        anchor_date = anchor or window_start.date()
        tz = window_start.tzinfo

        instants = set()
        for day in _iter_days(window_start.date(), window_end.date()):
            if rule.end_date and day > rule.end_date:
                break
            if not self.occurs_on(rule, day, anchor_date):
                continue
            for t in times:
                instant = datetime.combine(day, t, tzinfo=tz)
                if window_start <= instant < window_end:
                    instants.add(instant)

        return sorted(instants)

    def occurs_on(self, rule: Rule, day: date, anchor: date) -> bool:
        """Check whether `rule` schedules anything on `day`"""
        if rule.end_date and day > rule.end_date:
            return False

        if isinstance(rule, Daily):
            return True

        if isinstance(rule, Weekly):
            if rule.days_of_week:
                return day.isoweekday() % 7 in rule.days_of_week
            delta = (day - anchor).days
            return delta >= 0 and delta % 7 == 0

        if isinstance(rule, Custom):
            if rule.is_as_needed:
                return False
            delta = (day - anchor).days
            return delta >= 0 and delta % rule.interval == 0

        if isinstance(rule, Monthly):
            return day >= anchor and day.day == anchor.day

        logger.warning(f"Unknown recurrence rule type: {type(rule).__name__}")
        return False

    def expected_daily_doses(self, rule: Any, time_of_day: Optional[Iterable[Any]]) -> float:
        """Average number of obligations per day, used for refill forecasts"""
        rule = parse_rule(rule)
        per_day = len(normalize_times_of_day(time_of_day))

        if isinstance(rule, Daily):
            return float(per_day)
        if isinstance(rule, Weekly):
            days = len(rule.days_of_week) if rule.days_of_week else 1
            return per_day * days / 7
        if isinstance(rule, Custom):
            return 0.0 if rule.is_as_needed else per_day / rule.interval
        if isinstance(rule, Monthly):
            return per_day * 12 / 365
        return 0.0


recurrence_engine = RecurrenceRuleEngine()


def generate_occurrences(
    rule: Any,
    time_of_day: Optional[Iterable[Any]],
    window_start: datetime,
    window_end: datetime,
    anchor: Optional[Union[date, datetime]] = None
) -> List[datetime]:
    """Convenience wrapper around RecurrenceRuleEngine.generate"""
    return recurrence_engine.generate(rule, time_of_day, window_start, window_end, anchor)

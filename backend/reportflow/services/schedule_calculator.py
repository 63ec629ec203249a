"""
Next-execution computation for recurring schedules.

All arithmetic happens on the schedule's local wall clock and the result is
converted back to UTC, so "09:00 Europe/Berlin" stays at 09:00 local across
DST changes. Wall-clock times that do not exist (spring-forward gap) resolve
with the offset in force before the transition, which lands them just after
the gap. Hourly schedules step through absolute hours instead, so both
occurrences of a repeated fall-back hour fire.

Day-of-month policy: a day that does not exist in a month (e.g. the 31st in
February) is clamped to that month's last day. No month is skipped.
"""
import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, List
from zoneinfo import ZoneInfo

from reportflow.lib.clock import ensure_utc
from reportflow.models.schedule_config import ScheduleConfig, ScheduleFrequency


def _clamped_day(year: int, month: int, day: int) -> int:
    return min(day, calendar.monthrange(year, month)[1])


def _add_months(year: int, month: int, delta: int) -> tuple:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _hourly_candidates(config: ScheduleConfig, local: datetime) -> Iterator[datetime]:
    # Stepped in absolute time so the repeated hour of a fall-back is kept.
    # Yields aware UTC instants; the other generators yield local wall times.
    tz = local.tzinfo
    hour = local.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0) - timedelta(hours=1)
    for step in range(0, 72):
        start = hour + timedelta(hours=step)
        offset = (config.minute - start.astimezone(tz).minute) % 60
        yield start + timedelta(minutes=offset)


def _daily_candidates(config: ScheduleConfig, local: datetime) -> Iterator[datetime]:
    first = local.date() - timedelta(days=1)
    at = time(config.hour, config.minute)
    for step in range(0, 5):
        yield datetime.combine(first + timedelta(days=step), at)


def _weekly_candidates(config: ScheduleConfig, local: datetime) -> Iterator[datetime]:
    first = local.date() - timedelta(days=1)
    at = time(config.hour, config.minute)
    for step in range(0, 16):
        day = first + timedelta(days=step)
        # date.weekday() is Monday=0; schedules use Sunday=0
        if (day.weekday() + 1) % 7 == config.day_of_week:
            yield datetime.combine(day, at)


def _month_stride_candidates(config: ScheduleConfig, local: datetime) -> Iterator[datetime]:
    anchor = config.month_of_year or 1
    day_of_month = config.day_of_month or 1
    at = time(config.hour, config.minute)
    
    for step in range(-1, 30):
        year, month = _add_months(local.year, local.month, step)
        if config.frequency == ScheduleFrequency.QUARTERLY and (month - anchor) % 3 != 0:
            continue
        if config.frequency == ScheduleFrequency.YEARLY and month != anchor:
            continue
        day = _clamped_day(year, month, day_of_month)
        yield datetime.combine(date(year, month, day), at)


_CANDIDATES = {
    ScheduleFrequency.HOURLY: _hourly_candidates,
    ScheduleFrequency.DAILY: _daily_candidates,
    ScheduleFrequency.WEEKLY: _weekly_candidates,
    ScheduleFrequency.MONTHLY: _month_stride_candidates,
    ScheduleFrequency.QUARTERLY: _month_stride_candidates,
    ScheduleFrequency.YEARLY: _month_stride_candidates,
}


def calculate_next_execution(
    config: ScheduleConfig,
    reference: datetime,
    inclusive: bool = False,
) -> datetime:
    """
    Earliest firing time after the reference instant.
    
    Args:
        config: A schedule that passed validation
        reference: Instant to search from (naive values are taken as UTC)
        inclusive: Also accept a firing exactly at the reference instant
    
    Returns:
        Aware UTC datetime
    """
    tz = ZoneInfo(config.timezone)
    reference = ensure_utc(reference)
    local = reference.astimezone(tz)
    frequency = ScheduleFrequency(config.frequency)
    
    for candidate in _CANDIDATES[frequency](config, local):
        if candidate.tzinfo is None:
            candidate = candidate.replace(tzinfo=tz)
        instant = candidate.astimezone(timezone.utc)
        if instant > reference or (inclusive and instant == reference):
            return instant
    
    raise ValueError(f"No execution found for schedule {config!r} after {reference.isoformat()}")


def next_executions(config: ScheduleConfig, reference: datetime, count: int) -> List[datetime]:
    """
    The next `count` firing times, strictly increasing.
    
    Each one is searched for strictly after the previous one.
    """
    executions: List[datetime] = []
    current = ensure_utc(reference)
    for _ in range(count):
        current = calculate_next_execution(config, current)
        executions.append(current)
    return executions


def executions_until(config: ScheduleConfig, first: datetime, end: datetime) -> List[datetime]:
    """
    Firing times from `first` (a known firing) up to and including `end`.
    
    Args:
        config: Schedule of the report
        first: The report's next_execution_at
        end: Last instant of interest
    """
    current, end = ensure_utc(first), ensure_utc(end)
    executions: List[datetime] = []
    while current <= end:
        executions.append(current)
        current = calculate_next_execution(config, current)
    return executions

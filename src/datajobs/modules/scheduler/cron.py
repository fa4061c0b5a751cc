"""
Minimal 5-field cron support: validation, a human readable description and
next-fire computation.

Only the minute and hour fields drive the next-fire time; day, month and
day-of-week are validated but not applied. All times are naive datetimes in
the process's local timezone.
"""
import re
from datetime import datetime, timedelta
from typing import List, Optional

from datajobs.util import time_util
from .schemas import CronValidation

FIELD_NAMES = ('minute', 'hour', 'day', 'month', 'dayOfWeek')
FIELD_RANGES = {
    'minute': (0, 59),
    'hour': (0, 23),
    'day': (1, 31),
    'month': (1, 12),
    'dayOfWeek': (0, 6),
}
DAY_NAMES = ['Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday']
PARTS_ERROR = 'Cron expression must have 5 parts: minute hour day month dayOfWeek'


def split_expression(expression: str) -> List[str]:
    return expression.strip().split()


def _step(field: str) -> Optional[int]:
    """The n of a '*/n' field, or None when it is not a positive integer."""
    value = field[2:]
    if not value.isdigit() or int(value) <= 0:
        return None
    return int(value)


def _leading_int(field: str, default: int) -> int:
    """Leading integer of a field ('1-5' -> 1, '1,15' -> 1)."""
    match = re.match(r'\d+', field)
    return int(match.group(0)) if match else default


def _at(day: datetime, hour: int, minute: int) -> datetime:
    # Offsets rather than replace() so out-of-range values roll over instead of raising.
    midnight = day.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight + timedelta(hours=hour, minutes=minute)


def get_next_cron_run(expression: str, after: Optional[datetime] = None) -> datetime:
    """Returns the first fire time strictly after `after` (default: now)."""
    now = after or time_util.get_current_local_time()
    parts = split_expression(expression)
    if len(parts) != 5:
        return now + timedelta(minutes=1)

    minute_part, hour_part = parts[0], parts[1]
    this_minute = now.replace(second=0, microsecond=0)

    if minute_part.startswith('*/'):
        interval = _step(minute_part)
        if interval is None:
            return this_minute + timedelta(minutes=1)
        next_minute = -(-(now.minute + 1) // interval) * interval
        if next_minute >= 60:
            return this_minute.replace(minute=0) + timedelta(hours=1)
        return this_minute.replace(minute=next_minute)

    if minute_part == '*' and hour_part == '*':
        return this_minute + timedelta(minutes=1)

    target_minute = 0 if minute_part == '*' else _leading_int(minute_part, 0)

    if hour_part.startswith('*/'):
        interval = _step(hour_part)
        if interval is None:
            return this_minute + timedelta(minutes=1)
        for hour in range(0, 24, interval):
            candidate = _at(now, hour, target_minute)
            if candidate > now:
                return candidate
        return _at(now + timedelta(days=1), 0, target_minute)

    target_hour = now.hour if hour_part == '*' else _leading_int(hour_part, now.hour)
    next_run = _at(now, target_hour, target_minute)
    if next_run <= now:
        if hour_part == '*':
            next_run += timedelta(hours=1)
        else:
            next_run += timedelta(days=1)
    return next_run


def get_next_cron_runs(expression: str, count: int = 5, after: Optional[datetime] = None) -> List[datetime]:
    runs = []
    current = after or time_util.get_current_local_time()
    for _ in range(count):
        current = get_next_cron_run(expression, current)
        runs.append(current)
    return runs


def _field_error(name: str, value: str) -> Optional[str]:
    if value == '*':
        return None
    if value.isdigit():
        low, high = FIELD_RANGES[name]
        if not low <= int(value) <= high:
            return f"Invalid {name}: {value}"
        return None
    if value.startswith('*/') and _step(value) is None:
        return f"Invalid {name}: {value}"
    if '/' not in value and '-' not in value and ',' not in value:
        return f"Invalid {name}: {value}"
    return None


def describe_cron(expression: str) -> str:
    minute, hour, day, _month, day_of_week = split_expression(expression)

    if ' '.join(split_expression(expression)) == '* * * * *':
        return 'Every minute'
    if minute.startswith('*/'):
        return f"Every {minute[2:]} minutes"
    if hour.startswith('*/'):
        return f"Every {hour[2:]} hours at minute {minute if minute != '*' else 0}"
    if hour == '*' and minute != '*':
        return f"Every hour at minute {minute}"

    if minute != '*' and hour != '*':
        desc = f"At {hour.zfill(2)}:{minute.zfill(2)}"
    elif minute != '*':
        desc = f"At minute {minute}"
    else:
        desc = 'Every minute'

    if day_of_week != '*':
        desc += f" on {_describe_days(day_of_week)}"
    elif day != '*':
        desc += f" on day {day} of the month"
    elif hour != '*' and minute != '*':
        desc += ' daily'

    return desc


def _day_name(value: str) -> str:
    index = _leading_int(value, -1)
    return DAY_NAMES[index] if 0 <= index < len(DAY_NAMES) else value


def _describe_days(day_of_week: str) -> str:
    if '-' in day_of_week:
        start, end = day_of_week.split('-', 1)
        return f"{_day_name(start)} through {_day_name(end)}"
    if ',' in day_of_week:
        return ', '.join(_day_name(d) for d in day_of_week.split(','))
    return _day_name(day_of_week)


def validate_cron(expression: str, after: Optional[datetime] = None) -> CronValidation:
    parts = split_expression(expression)
    if len(parts) != 5:
        return CronValidation(valid=False, error=PARTS_ERROR)

    for name, value in zip(FIELD_NAMES, parts):
        error = _field_error(name, value)
        if error:
            return CronValidation(valid=False, error=error)

    try:
        next_runs = get_next_cron_runs(expression, 5, after)
    except (OverflowError, ValueError):
        # Ranges such as 99999999999-1 pass the field checks but overflow datetime.
        return CronValidation(valid=False, error=f"Cron expression has no valid next run: {expression}")
    return CronValidation(
        valid=True,
        description=describe_cron(expression),
        next_runs=[run.isoformat() for run in next_runs],
    )

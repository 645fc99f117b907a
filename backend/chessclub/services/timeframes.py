"""Date parsing and the named windows used by game and ranking filters.

All timestamps are naive local datetimes, matching what the ``games.date``
column stores.
"""
import calendar
from datetime import date, datetime, time, timedelta

from chessclub.errors import InvalidArgument


# Game list windows: now minus N days, inclusive
GAME_DATE_RANGES = {
    'last-week': timedelta(days=7),
    'last-month': timedelta(days=30),
    'last-year': timedelta(days=365),
}
GAME_DATE_RANGE_ALIASES = {'week': 'last-week', 'month': 'last-month', 'year': 'last-year'}

# Ranking statistics windows
STATS_TIME_FILTERS = ('week', 'month', 'year', 'all')


def _to_local_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _coerce(value, end_of_day=False):
    """Return a datetime for ``value`` or raise ValueError/TypeError."""
    if isinstance(value, datetime):
        return _to_local_naive(value)
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min)
    if isinstance(value, bool):
        raise TypeError('booleans are not dates')
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as sent by JavaScript clients
        return datetime.fromtimestamp(value / 1000.0)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError('empty date')
        if len(text) == 10:
            day = date.fromisoformat(text)
            return datetime.combine(day, time.max if end_of_day else time.min)
        if text.endswith(('Z', 'z')):
            text = text[:-1] + '+00:00'
        return _to_local_naive(datetime.fromisoformat(text))
    raise TypeError(f'unsupported date value {value!r}')


def parse_game_date(value, now=None) -> datetime:
    """Lenient parse for submitted game dates: anything unusable means now."""
    now = now or datetime.now()
    if value is None:
        return now
    try:
        return _coerce(value)
    except (TypeError, ValueError, OverflowError, OSError):
        return now


def parse_filter_date(value, field='date', end_of_day=False) -> datetime:
    """Strict parse for query filters and admin edits."""
    try:
        return _coerce(value, end_of_day=end_of_day)
    except (TypeError, ValueError, OverflowError, OSError):
        raise InvalidArgument(f'Invalid {field}: {value!r}')


def day_bounds(value):
    """First and last instant of a calendar day."""
    if isinstance(value, datetime):
        day = value.date()
    elif isinstance(value, date):
        day = value
    else:
        try:
            day = date.fromisoformat(str(value).strip()[:10])
        except ValueError:
            raise InvalidArgument(f'Invalid day: {value!r}')
    return datetime.combine(day, time.min), datetime.combine(day, time.max)


def normalize_date_range(name):
    key = GAME_DATE_RANGE_ALIASES.get(name, name)
    if key not in GAME_DATE_RANGES:
        allowed = ', '.join(sorted(GAME_DATE_RANGES))
        raise InvalidArgument(f'Invalid date range {name!r}, expected one of {allowed}')
    return key


def date_range_start(name, now=None) -> datetime:
    now = now or datetime.now()
    return now - GAME_DATE_RANGES[normalize_date_range(name)]


def _months_back(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))


def stats_window_start(time_filter, now=None):
    """Start of the ranking statistics window, or None for ``all``."""
    time_filter = (time_filter or 'all').lower()
    if time_filter not in STATS_TIME_FILTERS:
        raise InvalidArgument(f"Invalid time filter {time_filter!r}, expected one of {', '.join(STATS_TIME_FILTERS)}")
    now = now or datetime.now()
    if time_filter == 'week':
        return now - timedelta(days=7)
    if time_filter == 'month':
        return _months_back(now, 1)
    if time_filter == 'year':
        return now - timedelta(days=365)
    return None

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Iterable, List, Optional, Sequence, Union

from dateutil import tz
from dateutil.relativedelta import relativedelta

from models import (
    ArtistCount,
    Entry,
    HourlyBucket,
    SongCount,
    Stats,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

# Period tokens understood by filter_by_time_period ('' behaves like 'all')
PERIODS = ('all', 'thisweek', 'week', 'month', '3months', 'year')

# Lookback for the rolling periods, relative to now
PERIOD_OFFSETS = {
    'week': relativedelta(days=7),
    'month': relativedelta(months=1),
    '3months': relativedelta(months=3),
    'year': relativedelta(years=1),
}

DAY_NAMES = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')

DEFAULT_TOP_LIMIT = 10


class DayIndexOutOfRange(IndexError):
    """Raised when a day index is not in 0..6."""
    pass


def _localize(d: datetime) -> datetime:
    """Attach the host's zone to naive datetimes, keeping its DST rules."""
    if d.tzinfo is None:
        return d.replace(tzinfo=tz.tzlocal())
    return d


def _resolve_now(now: Optional[datetime]) -> datetime:
    # A real zone (not a fixed offset) so day and week arithmetic follow
    # the local calendar across DST changes
    if now is None:
        return datetime.now(tz.tzlocal())
    return _localize(now)


def start_of_iso_week(d: datetime) -> datetime:
    """Monday 00:00:00 of the ISO week containing d, in d's timezone."""
    monday = d - timedelta(days=d.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_iso_week(d: datetime) -> datetime:
    """Last instant of the Sunday closing the ISO week containing d."""
    sunday = start_of_iso_week(d) + timedelta(days=6)
    return sunday.replace(hour=23, minute=59, second=59, microsecond=999999)


def filter_by_date_range(entries: Sequence[Entry], start_date: datetime,
                         end_date: datetime) -> List[Entry]:
    """
    Keep entries played between start_date and end_date, both inclusive.

    Args:
        entries: Play entries (not modified)
        start_date: Lower bound (naive values are host-local)
        end_date: Upper bound (naive values are host-local)

    Returns:
        New list of matching entries in their original order
    """
    start_date, end_date = _localize(start_date), _localize(end_date)
    return [e for e in entries if start_date <= e.timestamp <= end_date]


def get_current_week_data(entries: Sequence[Entry],
                          now: Optional[datetime] = None) -> List[Entry]:
    now = _resolve_now(now)
    return filter_by_date_range(entries, start_of_iso_week(now), end_of_iso_week(now))


def filter_by_time_period(entries: Sequence[Entry], period: Optional[str],
                          now: Optional[datetime] = None) -> Sequence[Entry]:
    """
    Filter entries by a period token.

    Args:
        entries: Play entries
        period: One of 'all', 'thisweek', 'week', 'month', '3months', 'year'.
                Empty or unknown tokens return entries unchanged.
        now: Reference instant (defaults to the current local time)

    Returns:
        Entries within the period. 'thisweek' is the current ISO week;
        the other periods keep everything from now minus the period onward,
        with no upper bound.
    """
    if not period or period == 'all':
        return entries

    if period == 'thisweek':
        return get_current_week_data(entries, now)

    offset = PERIOD_OFFSETS.get(period)
    if offset is None:
        return entries

    # relativedelta clamps month-end overflow (Mar 31 - 1 month = Feb 28/29)
    start_date = _resolve_now(now) - offset
    return [e for e in entries if e.timestamp >= start_date]


def get_last_n_days(entries: Sequence[Entry], days: int = 7,
                    now: Optional[datetime] = None) -> List[Entry]:
    """
    Entries from midnight `days` days ago up to now.

    The lower bound is truncated to the start of its day; now is not.
    """
    now = _resolve_now(now)
    start_date = (now - timedelta(days=days)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    return filter_by_date_range(entries, start_date, now)


def get_top_songs(entries: Sequence[Entry], limit: int = DEFAULT_TOP_LIMIT) -> List[SongCount]:
    """
    Most played (artist, song) pairs.

    Args:
        entries: Play entries
        limit: Maximum number of results

    Returns:
        SongCount list sorted by count descending. Ties keep the order in
        which each pair was first seen.
    """
    if limit <= 0:
        return []

    counts = Counter((e.artist, e.song) for e in entries)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)

    return [
        SongCount(artist=artist, song=song, count=count)
        for (artist, song), count in ranked[:limit]
    ]


def get_top_artists(entries: Sequence[Entry], limit: int = DEFAULT_TOP_LIMIT) -> List[ArtistCount]:
    """Most played artists, same ordering rules as get_top_songs."""
    if limit <= 0:
        return []

    counts = Counter(e.artist for e in entries)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)

    return [ArtistCount(artist=artist, count=count) for artist, count in ranked[:limit]]


def get_unique_song_count(entries: Sequence[Entry]) -> int:
    return len({(e.artist, e.song) for e in entries})


def get_unique_artist_count(entries: Sequence[Entry]) -> int:
    return len({e.artist for e in entries})


def get_latest_entry(entries: Optional[Iterable[Entry]]) -> Optional[Entry]:
    """
    Entry with the most recent timestamp, or None for no entries.

    When several entries share the latest timestamp the first one wins.
    """
    if entries is None:
        return None

    # max() returns the first maximal item
    return max(entries, key=lambda e: e.timestamp, default=None)


def get_hourly_play_counts(entries: Sequence[Entry], days: int = 7,
                           now: Optional[datetime] = None) -> List[HourlyBucket]:
    """
    Play counts per UTC hour over the last `days` days.

    Args:
        entries: Play entries
        days: Lookback window, see get_last_n_days
        now: Reference instant

    Returns:
        HourlyBucket list for hours with at least one play, oldest first
    """
    recent = get_last_n_days(entries, days, now)

    buckets = Counter(
        e.timestamp.astimezone(timezone.utc).strftime('%Y-%m-%dT%H')
        for e in recent
    )

    return [HourlyBucket(hour=hour, count=count) for hour, count in sorted(buckets.items())]


def generate_heatmap_data(entries: Sequence[Entry], tz: Optional[tzinfo] = None) -> List[List[int]]:
    """
    Build a day-of-week x hour-of-day play count matrix.

    Args:
        entries: Play entries
        tz: Timezone for day/hour extraction (defaults to the host's local zone)

    Returns:
        7x24 matrix, rows Monday=0 to Sunday=6, columns hours 0-23
    """
    matrix = [[0] * 24 for _ in range(7)]

    for entry in entries:
        local = entry.timestamp.astimezone(tz)
        matrix[local.weekday()][local.hour] += 1

    return matrix


def get_day_name(day_index: int) -> str:
    """Short day name for a Monday-based index."""
    if isinstance(day_index, bool) or not isinstance(day_index, int) \
            or not 0 <= day_index < len(DAY_NAMES):
        raise DayIndexOutOfRange(f"Day index must be 0-6, got {day_index!r}")
    return DAY_NAMES[day_index]


def calculate_stats(entries: Sequence[Entry], now: Optional[datetime] = None) -> Stats:
    """
    Assemble the summary report for a set of entries.

    All week-relative figures use the same reference instant.

    Args:
        entries: Play entries
        now: Reference instant (sampled once when omitted)

    Returns:
        Stats snapshot
    """
    now = _resolve_now(now)
    current_week_entries = get_current_week_data(entries, now)

    logger.debug("Calculating stats for %d entries (%d this week)",
                 len(entries), len(current_week_entries))

    return Stats(
        total_songs=len(entries),
        unique_songs=get_unique_song_count(entries),
        unique_artists=get_unique_artist_count(entries),
        this_week=len(current_week_entries),
        top_songs=get_top_songs(entries, DEFAULT_TOP_LIMIT),
        top_artists=get_top_artists(entries, DEFAULT_TOP_LIMIT),
        top_week_songs=get_top_songs(current_week_entries, DEFAULT_TOP_LIMIT),
        latest_entry=get_latest_entry(entries),
    )


def format_time_ago(timestamp: Union[str, datetime], now: Optional[datetime] = None) -> str:
    """
    Human-readable age of a timestamp, e.g. '5 minutes ago'.

    Units are floored, never rounded. Future timestamps read 'Just now'.
    """
    now = _resolve_now(now)
    then = parse_timestamp(timestamp).astimezone(timezone.utc)
    diff_ms = (now.astimezone(timezone.utc) - then) // timedelta(milliseconds=1)
    diff_mins = diff_ms // 60000
    diff_hours = diff_ms // 3600000
    diff_days = diff_ms // 86400000

    if diff_mins < 1:
        return "Just now"
    elif diff_mins == 1:
        return "1 minute ago"
    elif diff_mins < 60:
        return f"{diff_mins} minutes ago"
    elif diff_hours == 1:
        return "1 hour ago"
    elif diff_hours < 24:
        return f"{diff_hours} hours ago"
    elif diff_days == 1:
        return "1 day ago"
    else:
        return f"{diff_days} days ago"


def format_timestamp(timestamp: Union[str, datetime], tz: Optional[tzinfo] = None) -> str:
    """Short display form like 'Jan 5, 09:30 PM' in the given (or local) timezone."""
    dt = parse_timestamp(timestamp).astimezone(tz)
    return f"{dt:%b} {dt.day}, {dt:%I:%M %p}"

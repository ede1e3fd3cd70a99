"""Playtime aggregation engine.

Pure functions over playtime entries: clock-range normalization, day/week/
month/year bucketing, the cross-player leaderboard and the "most active
hours" label. Nothing here touches the database. Entries are any objects
exposing ``player_id``, ``played_on``, ``start_time``, ``end_time`` and
``minutes`` (normally ``models.PlaytimeEntry`` rows).
"""
import re
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from errors import PlaytimeValidationError

CLOCK_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
DURATION_PATTERN = re.compile(r"^\s*(?:(\d+)h)?\s*(?:(\d+)m)?\s*$")

GRANULARITIES = ("daily", "weekly", "monthly", "yearly")
# Period names used by the cross-player endpoints
GRANULARITY_ALIASES = {"day": "daily", "week": "weekly", "month": "monthly", "year": "yearly"}

NO_ACTIVE_TIMES = "-"

# Any fixed day works; merging only compares clock times relative to it
MERGE_ANCHOR_DAY = date(2000, 1, 3)


@dataclass(frozen=True)
class Duration:
    """Normalized duration of one day's play."""

    start_time: str | None
    end_time: str | None
    minutes: int


def parse_day(value) -> date:
    """Coerce a ``date`` or ``YYYY-MM-DD`` string into a ``date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise PlaytimeValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD") from e


def normalize_clock(value: str) -> str:
    """Return canonical ``HH:mm`` for a bare clock time or a full timestamp.

    Full timestamps (anything with a ``T`` or a space) keep only their
    wall-clock hour and minute; no timezone conversion happens here.
    """
    if value is None:
        raise PlaytimeValidationError("Time is required")
    value = value.strip()
    if "T" in value or " " in value:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError as e:
            raise PlaytimeValidationError(f"Invalid timestamp {value!r}") from e
        return parsed.strftime("%H:%M")

    match = CLOCK_PATTERN.match(value)
    if not match:
        raise PlaytimeValidationError(f"Invalid time {value!r}, expected HH:mm")
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def _clock(value: str) -> time:
    return time.fromisoformat(normalize_clock(value))


def _session_bounds(played_on, start_time: str, end_time: str) -> tuple[datetime, datetime]:
    day = parse_day(played_on)
    start_at = datetime.combine(day, _clock(start_time))
    end_at = datetime.combine(day, _clock(end_time))
    # Overnight session: 23:30 -> 00:30 ends on the next day
    if end_at < start_at:
        end_at += timedelta(days=1)
    return start_at, end_at


def minutes_between(played_on, start_time: str, end_time: str) -> int:
    """Minutes from start to end on ``played_on``, wrapping past midnight."""
    start_at, end_at = _session_bounds(played_on, start_time, end_time)
    return max(0, int((end_at - start_at).total_seconds() // 60))


def resolve_duration(played_on, start_time: str | None = None, end_time: str | None = None,
                     minutes: int | None = None) -> Duration:
    """Turn logged input into a stored duration.

    A start/end pair wins over an explicit minute count. A lone start or end
    time, or no input at all, is rejected.
    """
    if start_time and end_time:
        start = normalize_clock(start_time)
        end = normalize_clock(end_time)
        return Duration(start, end, minutes_between(played_on, start, end))
    if start_time or end_time:
        raise PlaytimeValidationError("Both start_time and end_time are required for a time range")
    if minutes is None:
        raise PlaytimeValidationError("Either provide start and end times, or provide minutes")
    if minutes < 0:
        raise PlaytimeValidationError("Minutes must be non-negative")
    return Duration(None, None, int(minutes))


def merge_sessions(sessions: Iterable) -> Duration:
    """Fold several sessions of one day into a single daily total.

    Minutes are summed and the envelope widens to the earliest start and the
    latest end. Each session keeps the overnight rule of ``minutes_between``
    and is placed on whichever side of midnight keeps the envelope tightest,
    so ``23:00-01:00`` followed by ``02:00-03:00`` spans ``23:00-03:00``.
    """
    total = 0
    envelope = None
    for session in sessions:
        total += session.minutes
        if not (session.start_time and session.end_time):
            continue
        start_at, end_at = _session_bounds(MERGE_ANCHOR_DAY, session.start_time, session.end_time)
        if envelope is None:
            envelope = (start_at, end_at)
            continue
        candidates = []
        for shift in (0, -1, 1):
            offset = timedelta(days=shift)
            candidates.append(
                (min(envelope[0], start_at + offset), max(envelope[1], end_at + offset))
            )
        envelope = min(candidates, key=lambda bounds: bounds[1] - bounds[0])

    if envelope is None:
        return Duration(None, None, total)
    return Duration(envelope[0].strftime("%H:%M"), envelope[1].strftime("%H:%M"), total)


def format_minutes(minutes: int) -> str:
    """Format minutes as ``"Xh Ym"`` (``125`` -> ``"2h 5m"``)."""
    if minutes == 0:
        return "0m"
    hours, mins = divmod(minutes, 60)
    if hours == 0:
        return f"{mins}m"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"


def parse_minutes_label(label: str) -> int:
    """Inverse of ``format_minutes``."""
    match = DURATION_PATTERN.match(label or "")
    if not match or not any(match.groups()):
        raise PlaytimeValidationError(f"Invalid duration {label!r}, expected e.g. '2h 5m'")
    hours, mins = match.groups()
    return int(hours or 0) * 60 + int(mins or 0)


def normalize_granularity(granularity: str) -> str:
    granularity = GRANULARITY_ALIASES.get(granularity, granularity)
    if granularity not in GRANULARITIES:
        raise PlaytimeValidationError(
            f"Invalid granularity {granularity!r}, expected one of {', '.join(GRANULARITIES)}"
        )
    return granularity


def bucket_key(played_on, granularity: str) -> str:
    """Label of the bucket ``played_on`` falls into.

    daily and weekly keys are ``YYYY-MM-DD`` (weeks start on Monday),
    monthly keys are ``YYYY-MM`` and yearly keys ``YYYY``.
    """
    day = parse_day(played_on)
    granularity = normalize_granularity(granularity)
    if granularity == "daily":
        return day.isoformat()
    if granularity == "weekly":
        return (day - timedelta(days=day.weekday())).isoformat()
    if granularity == "monthly":
        return day.strftime("%Y-%m")
    return day.strftime("%Y")


def bucket_series(entries: Iterable, granularity: str) -> list[tuple[str, int]]:
    """Sum minutes per bucket, ascending by key. Empty buckets are omitted."""
    granularity = normalize_granularity(granularity)
    totals: dict[str, int] = {}
    for entry in entries:
        key = bucket_key(entry.played_on, granularity)
        totals[key] = totals.get(key, 0) + entry.minutes
    return sorted(totals.items())


def summarize(entries: Iterable, today: date) -> dict[str, int]:
    """Rolled-up totals for the player summary card."""
    seven_days_ago = today - timedelta(days=7)
    thirty_days_ago = today - timedelta(days=30)
    month_start = today.replace(day=1)

    summary = {
        "last_7_days_minutes": 0,
        "last_30_days_minutes": 0,
        "this_month_minutes": 0,
        "lifetime_minutes": 0,
    }
    for entry in entries:
        day = parse_day(entry.played_on)
        summary["lifetime_minutes"] += entry.minutes
        if day >= seven_days_ago:
            summary["last_7_days_minutes"] += entry.minutes
        if day >= thirty_days_ago:
            summary["last_30_days_minutes"] += entry.minutes
        if day >= month_start:
            summary["this_month_minutes"] += entry.minutes
    return summary


def period_window(period: str, now: datetime | date) -> tuple[date, date]:
    """Inclusive (start, end) days of the calendar period containing ``now``."""
    today = now.date() if isinstance(now, datetime) else now
    if period == "day":
        return today, today
    if period == "week":
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)
    if period == "month":
        start = today.replace(day=1)
        next_month = (start + timedelta(days=32)).replace(day=1)
        return start, next_month - timedelta(days=1)
    if period == "year":
        return today.replace(month=1, day=1), today.replace(month=12, day=31)
    raise PlaytimeValidationError(f"Invalid period {period!r}, expected day, week, month or year")


def build_leaderboard(entries: Iterable, handles: dict[int, str], limit: int = 10) -> list[dict]:
    """Rank players by total minutes and align their daily series.

    Players tied on total keep the order in which they were first seen.
    Every returned series covers the same sorted set of days, with 0 where a
    player has no entry on a day another top player does.
    """
    players: dict[int, dict] = {}
    for entry in entries:
        player = players.setdefault(entry.player_id, {
            "player_id": entry.player_id,
            "telegram_handle": handles.get(entry.player_id),
            "total_minutes": 0,
            "days": {},
        })
        day = parse_day(entry.played_on).isoformat()
        player["total_minutes"] += entry.minutes
        player["days"][day] = player["days"].get(day, 0) + entry.minutes

    top = sorted(players.values(), key=lambda p: p["total_minutes"], reverse=True)[:limit]

    all_days = sorted({day for player in top for day in player["days"]})
    return [
        {
            "player_id": player["player_id"],
            "telegram_handle": player["telegram_handle"],
            "total_minutes": player["total_minutes"],
            "data": [{"date": day, "minutes": player["days"].get(day, 0)} for day in all_days],
        }
        for player in top
    ]


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as e:
        raise PlaytimeValidationError(f"Unknown timezone {name!r}") from e


def _hour_label(moment: datetime) -> str:
    hour = moment.hour
    if moment.minute >= 30:
        hour = (hour + 1) % 24
    suffix = "pm" if hour >= 12 else "am"
    return f"{hour % 12 or 12}{suffix}"


def session_label(played_on, start_time: str, end_time: str, source_tz: str, display_tz: str) -> str:
    """Compact ``"3am-6am"`` label of one session in the display timezone."""
    source = _zone(source_tz)
    display = _zone(display_tz)
    start_at, end_at = _session_bounds(played_on, start_time, end_time)
    start_local = start_at.replace(tzinfo=source).astimezone(display)
    end_local = end_at.replace(tzinfo=source).astimezone(display)
    return f"{_hour_label(start_local)}-{_hour_label(end_local)}"


def most_active_times(entries: Iterable, source_tz: str, display_tz: str) -> str:
    """The one or two most frequent session labels, comma separated."""
    labels = [
        session_label(entry.played_on, entry.start_time, entry.end_time, source_tz, display_tz)
        for entry in entries
        if entry.start_time and entry.end_time
    ]
    if not labels:
        return NO_ACTIVE_TIMES
    # most_common keeps first-seen order among equal counts
    return ", ".join(label for label, _ in Counter(labels).most_common(2))


def last_gameplay_at(entries: Iterable) -> datetime | None:
    """End of the most recent session: its day at end_time, else 23:59:59."""
    latest = None
    for entry in entries:
        if latest is None or parse_day(entry.played_on) > parse_day(latest.played_on):
            latest = entry
    if latest is None:
        return None
    day = parse_day(latest.played_on)
    if latest.end_time:
        return datetime.combine(day, _clock(latest.end_time))
    return datetime.combine(day, time(23, 59, 59))

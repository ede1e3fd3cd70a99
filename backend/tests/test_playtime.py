"""Tests for the pure playtime aggregation engine."""
from datetime import date, datetime

import pytest

from errors import PlaytimeValidationError
from models import PlaytimeEntry
from playtime import (
    Duration,
    bucket_key,
    bucket_series,
    build_leaderboard,
    format_minutes,
    last_gameplay_at,
    merge_sessions,
    minutes_between,
    most_active_times,
    normalize_clock,
    parse_minutes_label,
    period_window,
    resolve_duration,
    session_label,
    summarize,
)

ICT = "Asia/Bangkok"
EST = "America/New_York"


def entry(played_on, minutes=0, start=None, end=None, player_id=1):
    return PlaytimeEntry(
        player_id=player_id,
        played_on=date.fromisoformat(played_on),
        start_time=start,
        end_time=end,
        minutes=minutes,
    )


def test_minutes_same_day():
    assert minutes_between("2026-01-06", "03:17", "04:56") == 99


def test_minutes_overnight_wrap():
    assert minutes_between("2026-01-06", "23:30", "00:30") == 60


def test_minutes_zero_length_session():
    assert minutes_between("2026-01-06", "10:00", "10:00") == 0


@pytest.mark.parametrize("start,end", [("00:00", "23:59"), ("23:59", "00:00"), ("12:00", "11:59")])
def test_minutes_never_negative(start, end):
    assert minutes_between("2026-03-08", start, end) >= 0


def test_normalize_clock_pads_hours():
    assert normalize_clock("9:05") == "09:05"


def test_normalize_clock_extracts_time_from_timestamp():
    assert normalize_clock("2026-01-06T03:17:42") == "03:17"
    assert normalize_clock("2026-01-06 21:05:00") == "21:05"


@pytest.mark.parametrize("value", ["25:00", "12:60", "noon", "", "2026-13-01T10:00"])
def test_normalize_clock_rejects_malformed(value):
    with pytest.raises(PlaytimeValidationError):
        normalize_clock(value)


def test_resolve_duration_from_times():
    duration = resolve_duration("2026-01-06", "23:30", "0:30")
    assert duration == Duration("23:30", "00:30", 60)


def test_resolve_duration_times_win_over_minutes():
    duration = resolve_duration("2026-01-06", "10:00", "11:00", minutes=500)
    assert duration.minutes == 60


def test_resolve_duration_flat_minutes():
    assert resolve_duration("2026-01-06", minutes=45) == Duration(None, None, 45)


def test_resolve_duration_requires_input():
    with pytest.raises(PlaytimeValidationError):
        resolve_duration("2026-01-06")


def test_resolve_duration_rejects_lone_time():
    with pytest.raises(PlaytimeValidationError):
        resolve_duration("2026-01-06", start_time="10:00", minutes=30)


def test_resolve_duration_rejects_negative_minutes():
    with pytest.raises(PlaytimeValidationError):
        resolve_duration("2026-01-06", minutes=-1)


def test_merge_sessions_sums_and_widens():
    merged = merge_sessions([
        Duration("03:17", "04:56", 99),
        Duration("06:00", "07:30", 90),
    ])
    assert merged == Duration("03:17", "07:30", 189)


def test_merge_sessions_is_idempotent_on_merged_data():
    merged = merge_sessions([Duration("03:17", "04:56", 99), Duration("06:00", "07:30", 90)])
    assert merge_sessions([merged]) == merged


def test_merge_sessions_keeps_times_from_either_side():
    merged = merge_sessions([Duration(None, None, 30), Duration("06:00", "07:30", 90)])
    assert merged == Duration("06:00", "07:30", 120)


def test_merge_sessions_overnight_then_early_morning():
    merged = merge_sessions([Duration("23:00", "01:00", 120), Duration("02:00", "03:00", 60)])
    assert merged == Duration("23:00", "03:00", 180)


def test_merge_sessions_extends_past_midnight():
    merged = merge_sessions([Duration("22:00", "23:30", 90), Duration("23:45", "00:45", 60)])
    assert merged == Duration("22:00", "00:45", 150)


def test_format_minutes():
    assert format_minutes(125) == "2h 5m"
    assert format_minutes(0) == "0m"
    assert format_minutes(45) == "45m"
    assert format_minutes(180) == "3h"


@pytest.mark.parametrize("minutes", [0, 5, 60, 125, 1441])
def test_format_minutes_parses_back(minutes):
    assert parse_minutes_label(format_minutes(minutes)) == minutes


def test_parse_minutes_label_rejects_garbage():
    with pytest.raises(PlaytimeValidationError):
        parse_minutes_label("two hours")


def test_daily_buckets():
    entries = [entry("2026-01-07", 304), entry("2026-01-06", 240)]
    assert bucket_series(entries, "daily") == [("2026-01-06", 240), ("2026-01-07", 304)]


def test_weekly_buckets_start_on_monday():
    entries = [entry("2026-01-06", 240), entry("2026-01-07", 304)]
    assert bucket_series(entries, "weekly") == [("2026-01-05", 544)]


def test_week_bucket_for_sunday_belongs_to_previous_monday():
    assert bucket_key("2026-01-11", "weekly") == "2026-01-05"


def test_monthly_and_yearly_buckets():
    entries = [entry("2025-12-31", 10), entry("2026-01-06", 20), entry("2026-01-28", 30)]
    assert bucket_series(entries, "monthly") == [("2025-12", 10), ("2026-01", 50)]
    assert bucket_series(entries, "yearly") == [("2025", 10), ("2026", 50)]


def test_bucket_aliases_match_granularities():
    entries = [entry("2026-01-06", 240)]
    assert bucket_series(entries, "week") == bucket_series(entries, "weekly")


def test_bucket_series_rejects_unknown_granularity():
    with pytest.raises(PlaytimeValidationError):
        bucket_series([entry("2026-01-06", 1)], "hourly")


def test_summarize():
    entries = [
        entry("2026-01-20", 60),
        entry("2026-01-12", 30),
        entry("2025-12-25", 15),
        entry("2025-06-01", 5),
    ]
    summary = summarize(entries, today=date(2026, 1, 20))
    assert summary == {
        "last_7_days_minutes": 60,
        "last_30_days_minutes": 105,
        "this_month_minutes": 90,
        "lifetime_minutes": 110,
    }


def test_period_window():
    now = datetime(2026, 2, 11, 15, 0)  # Wednesday
    assert period_window("day", now) == (date(2026, 2, 11), date(2026, 2, 11))
    assert period_window("week", now) == (date(2026, 2, 9), date(2026, 2, 15))
    assert period_window("month", now) == (date(2026, 2, 1), date(2026, 2, 28))
    assert period_window("year", now) == (date(2026, 1, 1), date(2026, 12, 31))


def test_period_window_december():
    assert period_window("month", date(2025, 12, 3)) == (date(2025, 12, 1), date(2025, 12, 31))


def test_period_window_rejects_unknown():
    with pytest.raises(PlaytimeValidationError):
        period_window("decade", date(2026, 1, 1))


def test_leaderboard_orders_by_total():
    entries = [
        entry("2026-01-06", 500, player_id=1),
        entry("2026-01-06", 300, player_id=2),
        entry("2026-01-07", 800, player_id=3),
    ]
    board = build_leaderboard(entries, {1: "alice", 2: "bob", 3: "carol"})
    assert [row["total_minutes"] for row in board] == [800, 500, 300]
    assert [row["telegram_handle"] for row in board] == ["carol", "alice", "bob"]


def test_leaderboard_backfills_missing_days():
    entries = [
        entry("2026-01-06", 500, player_id=1),
        entry("2026-01-07", 300, player_id=2),
    ]
    board = build_leaderboard(entries, {})
    assert board[0]["data"] == [
        {"date": "2026-01-06", "minutes": 500},
        {"date": "2026-01-07", "minutes": 0},
    ]
    assert board[1]["data"] == [
        {"date": "2026-01-06", "minutes": 0},
        {"date": "2026-01-07", "minutes": 300},
    ]


def test_leaderboard_ties_keep_encounter_order():
    entries = [entry("2026-01-06", 100, player_id=7), entry("2026-01-06", 100, player_id=3)]
    assert [row["player_id"] for row in build_leaderboard(entries, {})] == [7, 3]


def test_leaderboard_limit():
    entries = [entry("2026-01-06", minutes, player_id=minutes) for minutes in range(1, 13)]
    board = build_leaderboard(entries, {}, limit=10)
    assert len(board) == 10
    assert board[0]["player_id"] == 12
    assert board[-1]["player_id"] == 3


def test_leaderboard_empty():
    assert build_leaderboard([], {}) == []


def test_session_label_converts_between_zones():
    # 15:00-18:00 in Bangkok (UTC+7) is 3am-6am in New York winter time (UTC-5)
    assert session_label("2026-01-06", "15:00", "18:00", ICT, EST) == "3am-6am"


def test_session_label_follows_daylight_saving():
    # New York is UTC-4 in July, so the same clock times shift by 11 hours
    assert session_label("2026-07-06", "15:00", "18:00", ICT, EST) == "4am-7am"


def test_session_label_rounds_to_nearest_hour():
    assert session_label("2026-01-06", "15:29", "17:30", ICT, EST) == "3am-6am"
    assert session_label("2026-01-06", "11:45", "12:10", ICT, EST) == "12am-12am"


def test_most_active_times_top_two():
    entries = [
        entry("2026-01-05", 180, "15:00", "18:00"),
        entry("2026-01-06", 180, "15:00", "18:00"),
        entry("2026-01-07", 120, "20:00", "22:00"),
        entry("2026-01-08", 120, "20:10", "21:50"),
        entry("2026-01-09", 60, "01:00", "02:00"),
        entry("2026-01-10", 45),
    ]
    assert most_active_times(entries, ICT, EST) == "3am-6am, 8am-10am"


def test_most_active_times_placeholder():
    assert most_active_times([entry("2026-01-06", 30)], ICT, EST) == "-"
    assert most_active_times([], ICT, EST) == "-"


def test_last_gameplay_at_uses_end_time():
    entries = [entry("2026-01-06", 60, "10:00", "11:00"), entry("2026-01-08", 60, "20:00", "21:15")]
    assert last_gameplay_at(entries) == datetime(2026, 1, 8, 21, 15)


def test_last_gameplay_at_without_times():
    assert last_gameplay_at([entry("2026-01-08", 60)]) == datetime(2026, 1, 8, 23, 59, 59)
    assert last_gameplay_at([]) is None

#!/usr/bin/env python3
"""
Batch import of playtime sessions from a CSV file.

Expected columns: handle, played_on (YYYY-MM-DD), start_time, end_time (HH:mm).
Unknown handles become new players. A second session for a day that already
has an entry is merged into it (minutes summed, earliest start and latest end
kept) instead of overwriting it.

Usage:
    python import_playtime.py sessions.csv
"""
import argparse
import csv
import logging
import os
import sys

# Add backend directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sqlmodel import Session

from db import create_db_and_tables, engine
from playtime import parse_day, resolve_duration
from store import find_or_create_player, merge_session_into_day

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("handle", "played_on", "start_time", "end_time")


def import_rows(session: Session, rows) -> dict:
    """Merge each CSV row into the day's entry. A bad row is logged and skipped."""
    stats = {"imported": 0, "players_created": 0, "failed": 0}

    for line_no, row in enumerate(rows, start=2):
        handle = (row.get("handle") or "").strip()
        try:
            if not handle:
                raise ValueError("handle is empty")
            played_on = parse_day(row.get("played_on"))
            duration = resolve_duration(played_on, row.get("start_time"), row.get("end_time"))

            player, created = find_or_create_player(session, handle)
            # A new player only exists once the merge below commits
            entry = merge_session_into_day(session, player.id, played_on, duration)
            if created:
                stats["players_created"] += 1
                logger.info(f"Created player: {handle} (ID: {player.id})")
            stats["imported"] += 1
            logger.info(
                f"Line {line_no}: {handle} on {played_on} -> {entry.minutes} minutes "
                f"({entry.start_time} - {entry.end_time})"
            )
        except Exception as e:
            session.rollback()
            stats["failed"] += 1
            logger.error(f"Line {line_no}: error processing {handle or '<no handle>'}: {e}")

    return stats


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import playtime sessions from CSV")
    parser.add_argument("csv_path", help="CSV with handle,played_on,start_time,end_time")
    args = parser.parse_args(argv)

    create_db_and_tables()

    with open(args.csv_path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        missing = [c for c in REQUIRED_COLUMNS if c not in (reader.fieldnames or [])]
        if missing:
            logger.error(f"Missing columns: {', '.join(missing)}")
            return 2

        with Session(engine) as session:
            stats = import_rows(session, reader)

    logger.info(
        f"Import complete: {stats['imported']} sessions imported, "
        f"{stats['players_created']} players created, {stats['failed']} failed"
    )
    return 1 if stats["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())

"""Database operations for players, playtime entries and the activity log.

Every write that changes a player or a playtime entry also records an
ActivityLog row in the same transaction.
"""
import json
import logging
from collections import defaultdict
from datetime import UTC, date, datetime

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from db import is_postgres
from errors import EntryConflictError, NotFoundError
from models import ActivityLog, Player, PlaytimeEntry
from playtime import Duration, merge_sessions, normalize_clock, parse_day, resolve_duration

logger = logging.getLogger(__name__)


def log_activity(
    session: Session,
    actor: str,
    entity_type: str,
    entity_id,
    action: str,
    changes: dict | None = None,
) -> None:
    """Stage an audit row; it is committed together with the change it describes."""
    session.add(
        ActivityLog(
            actor=actor,
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action,
            changes=json.dumps(changes, default=str) if changes else None,
        )
    )


def list_activity(session: Session, entity_type: str | None = None, limit: int = 100) -> list[ActivityLog]:
    stmt = select(ActivityLog)
    if entity_type:
        stmt = stmt.where(ActivityLog.entity_type == entity_type)
    stmt = stmt.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit)
    return session.exec(stmt).all()


# Players

def get_player(session: Session, player_id: int) -> Player:
    player = session.get(Player, player_id)
    if not player:
        raise NotFoundError(f"Player {player_id} not found")
    return player


def list_players(session: Session) -> list[Player]:
    return session.exec(select(Player).order_by(Player.id)).all()


def create_player(session: Session, data: dict, actor: str = "api") -> Player:
    """Insert a player; the database assigns the next sequential id."""
    player = Player(**data)
    session.add(player)
    try:
        session.flush()
    except IntegrityError as e:
        session.rollback()
        raise EntryConflictError(
            f"Player with handle {data.get('telegram_handle')!r} already exists"
        ) from e

    log_activity(session, actor, "PLAYER", player.id, "CREATE", data)
    session.commit()
    session.refresh(player)
    return player


def find_or_create_player(session: Session, handle: str, actor: str = "import") -> tuple[Player, bool]:
    """Look a player up by handle (case-insensitive), creating it if missing.

    Does not commit; the caller owns the transaction.
    """
    handle = handle.strip()
    player = session.exec(
        select(Player).where(func.lower(Player.telegram_handle) == handle.lower())
    ).first()
    if player:
        return player, False

    player = Player(telegram_handle=handle)
    session.add(player)
    session.flush()
    log_activity(session, actor, "PLAYER", player.id, "CREATE", {"telegram_handle": handle})
    return player, True


# Playtime entries

def get_entry(session: Session, entry_id: int) -> PlaytimeEntry:
    entry = session.get(PlaytimeEntry, entry_id)
    if not entry:
        raise NotFoundError(f"Playtime entry {entry_id} not found")
    return entry


def _find_day(session: Session, player_id: int, played_on: date) -> PlaytimeEntry | None:
    return session.exec(
        select(PlaytimeEntry)
        .where(PlaytimeEntry.player_id == player_id)
        .where(PlaytimeEntry.played_on == played_on)
        .execution_options(populate_existing=True)
    ).first()


def list_entries(
    session: Session,
    player_id: int | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[PlaytimeEntry]:
    stmt = select(PlaytimeEntry)
    if player_id is not None:
        stmt = stmt.where(PlaytimeEntry.player_id == player_id)
    if date_from:
        stmt = stmt.where(PlaytimeEntry.played_on >= date_from)
    if date_to:
        stmt = stmt.where(PlaytimeEntry.played_on <= date_to)
    stmt = stmt.order_by(PlaytimeEntry.played_on, PlaytimeEntry.id)
    return session.exec(stmt).all()


def entries_by_player(session: Session) -> dict[int, list[PlaytimeEntry]]:
    grouped = defaultdict(list)
    for entry in list_entries(session):
        grouped[entry.player_id].append(entry)
    return grouped


def player_handles(session: Session, player_ids) -> dict[int, str]:
    player_ids = set(player_ids)
    if not player_ids:
        return {}
    rows = session.exec(
        select(Player.id, Player.telegram_handle).where(Player.id.in_(player_ids))
    ).all()
    return {player_id: handle for player_id, handle in rows}


def upsert_entry(
    session: Session,
    player_id: int,
    played_on: date,
    duration: Duration,
    stakes: str | None = None,
    actor: str = "api",
) -> PlaytimeEntry:
    """Create or fully overwrite the (player, day) entry.

    Uses INSERT ... ON CONFLICT DO UPDATE so concurrent writers for the same
    day are serialized by the unique constraint; the last writer wins.
    """
    get_player(session, player_id)
    played_on = parse_day(played_on)
    now = datetime.now(UTC)

    insert = pg_insert if is_postgres(session.bind) else sqlite_insert
    stmt = insert(PlaytimeEntry.__table__).values(
        player_id=player_id,
        played_on=played_on,
        start_time=duration.start_time,
        end_time=duration.end_time,
        minutes=duration.minutes,
        stakes=stakes,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["player_id", "played_on"],
        set_={
            "start_time": stmt.excluded.start_time,
            "end_time": stmt.excluded.end_time,
            "minutes": stmt.excluded.minutes,
            "stakes": stmt.excluded.stakes,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    session.execute(stmt)

    entry = _find_day(session, player_id, played_on)
    # The conflict branch keeps the original created_at
    created = entry.created_at == entry.updated_at
    log_activity(
        session, actor, "PLAYTIME", entry.id, "CREATE" if created else "UPDATE",
        {
            "played_on": played_on,
            "start_time": duration.start_time,
            "end_time": duration.end_time,
            "minutes": duration.minutes,
        },
    )
    session.commit()
    session.refresh(entry)
    return entry


def update_entry(session: Session, entry_id: int, changes: dict, actor: str = "api") -> PlaytimeEntry:
    """Apply an explicit edit to one entry.

    Moving the entry onto a day that already has an entry for the same player
    raises EntryConflictError; edits never merge. Touching start/end
    recomputes minutes from the range; setting only minutes turns the entry
    into a flat duration and clears the range. Any other edit leaves the
    stored range and minutes alone.
    """
    entry = get_entry(session, entry_id)

    played_on = parse_day(changes["played_on"]) if changes.get("played_on") else entry.played_on
    if played_on != entry.played_on:
        conflict = _find_day(session, entry.player_id, played_on)
        if conflict and conflict.id != entry.id:
            raise EntryConflictError("An entry already exists for this player and date")

    minutes = changes.get("minutes")
    if "start_time" in changes or "end_time" in changes:
        start_time = entry.start_time
        end_time = entry.end_time
        if "start_time" in changes:
            start_time = normalize_clock(changes["start_time"]) if changes["start_time"] else None
        if "end_time" in changes:
            end_time = normalize_clock(changes["end_time"]) if changes["end_time"] else None
        duration = resolve_duration(
            played_on, start_time, end_time, entry.minutes if minutes is None else minutes
        )
    elif minutes is not None:
        duration = resolve_duration(played_on, minutes=minutes)
    else:
        # Stored minutes stand as they are; a merged day is wider than its sum
        duration = Duration(entry.start_time, entry.end_time, entry.minutes)

    entry.played_on = played_on
    entry.start_time = duration.start_time
    entry.end_time = duration.end_time
    entry.minutes = duration.minutes
    if "stakes" in changes:
        entry.stakes = changes["stakes"]
    entry.updated_at = datetime.now(UTC)
    session.add(entry)
    log_activity(session, actor, "PLAYTIME", entry.id, "UPDATE", changes)

    try:
        session.commit()
    except IntegrityError as e:
        # Another writer took the target day between the check and the commit
        session.rollback()
        raise EntryConflictError("An entry already exists for this player and date") from e
    session.refresh(entry)
    return entry


def delete_entry(session: Session, entry_id: int, actor: str = "api") -> None:
    entry = get_entry(session, entry_id)
    log_activity(
        session, actor, "PLAYTIME", entry.id, "DELETE",
        {"player_id": entry.player_id, "played_on": entry.played_on, "minutes": entry.minutes},
    )
    session.delete(entry)
    session.commit()


def merge_session_into_day(
    session: Session,
    player_id: int,
    played_on: date,
    duration: Duration,
    actor: str = "import",
) -> PlaytimeEntry:
    """Batch-import path: fold another session into the day's entry.

    Unlike upsert_entry, an existing entry is not overwritten: minutes are
    summed and the start/end envelope widens.
    """
    played_on = parse_day(played_on)
    existing = _find_day(session, player_id, played_on)
    now = datetime.now(UTC)

    if existing:
        merged = merge_sessions([existing, duration])
        logger.info(
            f"Merging into entry {existing.id}: {existing.minutes} + {duration.minutes} = "
            f"{merged.minutes} minutes ({merged.start_time} - {merged.end_time})"
        )
        existing.start_time = merged.start_time
        existing.end_time = merged.end_time
        existing.minutes = merged.minutes
        existing.updated_at = now
        entry = existing
        action = "UPDATE"
    else:
        entry = PlaytimeEntry(
            player_id=player_id,
            played_on=played_on,
            start_time=duration.start_time,
            end_time=duration.end_time,
            minutes=duration.minutes,
            updated_at=now,
        )
        action = "CREATE"

    session.add(entry)
    session.flush()
    log_activity(
        session, actor, "PLAYTIME", entry.id, action,
        {"played_on": played_on, "start_time": entry.start_time,
         "end_time": entry.end_time, "minutes": entry.minutes},
    )
    session.commit()
    session.refresh(entry)
    return entry

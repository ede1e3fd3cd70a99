import logging
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime, timedelta

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

import store
from config import LEADERBOARD_SIZE, LOG_LEVEL, PLAYTIME_DISPLAY_TZ, PLAYTIME_SOURCE_TZ
from db import create_db_and_tables, get_session
from errors import EntryConflictError, NotFoundError, PlaytimeValidationError
from metrics import calculate_retention, calculate_value_score, classify_churn_status
from playtime import (
    build_leaderboard,
    bucket_series,
    format_minutes,
    last_gameplay_at,
    most_active_times,
    period_window,
    resolve_duration,
    summarize,
)
from schemas import (
    ActivityResponse,
    LeaderboardRow,
    PlayerCreate,
    PlayerListRow,
    PlayerResponse,
    PlaytimeEntryCreate,
    PlaytimeEntryResponse,
    PlaytimeEntryUpdate,
    PlaytimeSummary,
    RetentionResponse,
    SeriesPoint,
)

# Configure logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    create_db_and_tables()
    logger.info("Database initialized")
    yield


# Create FastAPI app
app = FastAPI(title="Poker CRM API", version="1.0.0", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins in development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _today() -> date:
    return datetime.now(UTC).date()


@app.post("/players", response_model=PlayerResponse)
def create_player(request: PlayerCreate, session: Session = Depends(get_session)):
    """Create a player; the next sequential id is assigned by the database."""
    logger.info(f"Create player request: {request.telegram_handle}")

    try:
        player = store.create_player(session, request.model_dump())
        logger.info(f"Created player {player.id} ({player.telegram_handle})")
        return player
    except EntryConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error creating player: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/players", response_model=list[PlayerListRow])
def get_players(session: Session = Depends(get_session)):
    """List players with playtime totals, most active hours and churn classification."""
    logger.info("Players list request")

    try:
        players = store.list_players(session)
        entries = store.entries_by_player(session)
        now = datetime.now(UTC)

        rows = []
        for player in players:
            player_entries = entries.get(player.id, [])
            total = sum(entry.minutes for entry in player_entries)
            last_played = last_gameplay_at(player_entries)
            churn = classify_churn_status(last_played or player.last_active_at, now=now)
            rows.append(
                PlayerListRow(
                    **player.model_dump(),
                    total_playtime=total,
                    total_playtime_label=format_minutes(total),
                    most_active_times=most_active_times(
                        player_entries, PLAYTIME_SOURCE_TZ, PLAYTIME_DISPLAY_TZ
                    ),
                    last_gameplay_at=last_played,
                    value_score=calculate_value_score(
                        player.total_deposited, player.total_wagered, player.net_pnl
                    ),
                    churn_status=churn["status"],
                    churn_risk=churn["churn_risk"],
                )
            )

        logger.info(f"Found {len(rows)} players")
        return rows

    except Exception as e:
        logger.error(f"Error getting players: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/players/{player_id}", response_model=PlayerResponse)
def get_player(player_id: int, session: Session = Depends(get_session)):
    """Get a single player."""
    try:
        return store.get_player(session, player_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@app.get("/players/{player_id}/playtime", response_model=list[PlaytimeEntryResponse])
def get_player_playtime(
    player_id: int,
    date_from: date = Query(None, description="Start date filter (YYYY-MM-DD)"),
    date_to: date = Query(None, description="End date filter (YYYY-MM-DD)"),
    session: Session = Depends(get_session),
):
    """Get a player's raw playtime entries with optional date filtering."""
    logger.info(f"Playtime request for player {player_id} - from: {date_from}, to: {date_to}")

    try:
        store.get_player(session, player_id)
        return store.list_entries(session, player_id, date_from, date_to)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Error getting playtime entries: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.post("/players/{player_id}/playtime", response_model=PlaytimeEntryResponse)
def upsert_player_playtime(
    player_id: int, request: PlaytimeEntryCreate, session: Session = Depends(get_session)
):
    """Create or overwrite the player's entry for the given day."""
    logger.info(f"Playtime upsert for player {player_id} on {request.played_on}")

    try:
        duration = resolve_duration(
            request.played_on, request.start_time, request.end_time, request.minutes
        )
        entry = store.upsert_entry(
            session, player_id, request.played_on, duration, stakes=request.stakes
        )
        logger.info(
            f"Saved entry {entry.id}: {entry.minutes} minutes "
            f"({entry.start_time} - {entry.end_time})"
        )
        return entry

    except PlaytimeValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error in playtime upsert: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/players/{player_id}/playtime/summary", response_model=PlaytimeSummary)
def get_player_playtime_summary(player_id: int, session: Session = Depends(get_session)):
    """Last 7 days, last 30 days, this month and lifetime totals."""
    try:
        store.get_player(session, player_id)
        return summarize(store.list_entries(session, player_id), _today())
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Error getting playtime summary: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/players/{player_id}/playtime/series", response_model=list[SeriesPoint])
def get_player_playtime_series(
    player_id: int,
    granularity: str = Query("daily", description="daily, weekly, monthly or yearly"),
    date_from: date = Query(None, description="Start date filter (YYYY-MM-DD)"),
    date_to: date = Query(None, description="End date filter (YYYY-MM-DD)"),
    session: Session = Depends(get_session),
):
    """Bucketed playtime series for one player."""
    logger.info(f"Series request for player {player_id} ({granularity})")

    try:
        store.get_player(session, player_id)
        entries = store.list_entries(session, player_id, date_from, date_to)
        return [
            SeriesPoint(period=period, minutes=minutes)
            for period, minutes in bucket_series(entries, granularity)
        ]
    except PlaytimeValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Error getting playtime series: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.patch("/playtime/{entry_id}", response_model=PlaytimeEntryResponse)
def update_playtime(
    entry_id: int, request: PlaytimeEntryUpdate, session: Session = Depends(get_session)
):
    """Edit a specific entry. Moving it onto an occupied day is a conflict."""
    logger.info(f"Update playtime entry request for ID: {entry_id}")

    try:
        entry = store.update_entry(session, entry_id, request.model_dump(exclude_unset=True))
        logger.info(f"Successfully updated entry {entry_id}")
        return entry

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except EntryConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except PlaytimeValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error updating playtime entry: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.delete("/playtime/{entry_id}")
def delete_playtime(entry_id: int, session: Session = Depends(get_session)):
    """Delete a specific entry by ID."""
    logger.info(f"Delete playtime entry request for ID: {entry_id}")

    try:
        store.delete_entry(session, entry_id)
        logger.info(f"Successfully deleted entry {entry_id}")
        return {"ok": True, "message": "Entry deleted successfully"}

    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except Exception as e:
        session.rollback()
        logger.error(f"Error deleting playtime entry: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/playtime/top-players", response_model=list[LeaderboardRow])
def get_top_players(
    period: str = Query("month", description="day, week, month or year"),
    session: Session = Depends(get_session),
):
    """Top players by minutes played in the current period, with aligned daily series."""
    logger.info(f"Top players request for period: {period}")

    try:
        start_date, end_date = period_window(period, datetime.now(UTC))
        entries = store.list_entries(session, date_from=start_date, date_to=end_date)
        handles = store.player_handles(session, (entry.player_id for entry in entries))
        leaderboard = build_leaderboard(entries, handles, limit=LEADERBOARD_SIZE)

        logger.info(f"Leaderboard {start_date} to {end_date}: {len(leaderboard)} players")
        return leaderboard

    except PlaytimeValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Error getting top players: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/playtime/aggregated", response_model=list[SeriesPoint])
def get_aggregated_playtime(
    period: str = Query("day", description="day, week, month or year"),
    days: int = Query(30, ge=0, description="How many days back to include"),
    session: Session = Depends(get_session),
):
    """All players' minutes bucketed by period over the last N days."""
    logger.info(f"Aggregated playtime request: period={period}, days={days}")

    try:
        start_date = _today() - timedelta(days=days)
        entries = store.list_entries(session, date_from=start_date)
        return [
            SeriesPoint(period=key, minutes=minutes)
            for key, minutes in bucket_series(entries, period)
        ]
    except PlaytimeValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Error getting aggregated playtime: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/summary/retention", response_model=RetentionResponse)
def get_retention(session: Session = Depends(get_session)):
    """Share of players active in the last 7 and 30 days."""
    try:
        entries = store.entries_by_player(session)
        last_active = [
            last_gameplay_at(entries.get(player.id, [])) or player.last_active_at
            for player in store.list_players(session)
        ]
        return calculate_retention(last_active)
    except Exception as e:
        logger.error(f"Error getting retention: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/activity", response_model=list[ActivityResponse])
def get_activity(
    entity_type: str = Query(None, description="PLAYER or PLAYTIME"),
    limit: int = Query(100, ge=1, le=1000),
    session: Session = Depends(get_session),
):
    """Audit trail, newest first."""
    try:
        return store.list_activity(session, entity_type=entity_type, limit=limit)
    except Exception as e:
        logger.error(f"Error getting activity: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Poker CRM API", "docs": "/docs"}

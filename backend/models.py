from datetime import UTC, date, datetime

from sqlmodel import Field, SQLModel, UniqueConstraint


class Player(SQLModel, table=True):
    # id is the sequential player number, assigned by the database
    id: int | None = Field(default=None, primary_key=True)
    telegram_handle: str = Field(index=True, unique=True)
    ginza_username: str | None = Field(default=None)
    country: str | None = Field(default=None)
    status: str = Field(default="ACTIVE", index=True)  # ACTIVE, FADING or CHURNED
    last_active_at: datetime | None = Field(default=None)
    total_deposited: float = Field(default=0)
    total_wagered: float = Field(default=0)
    net_pnl: float = Field(default=0)
    notes: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class PlaytimeEntry(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("player_id", "played_on", name="uniq_playtime_player_day"),)

    id: int | None = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="player.id", index=True)
    played_on: date = Field(index=True)
    start_time: str | None = Field(default=None)  # HH:mm, no timezone
    end_time: str | None = Field(default=None)  # HH:mm, no timezone
    minutes: int = Field(default=0, ge=0)
    stakes: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = Field(default=None)


class ActivityLog(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    actor: str = Field(index=True)
    entity_type: str = Field(index=True)  # PLAYER or PLAYTIME
    entity_id: str = Field(index=True)
    action: str  # CREATE, UPDATE or DELETE
    changes: str | None = Field(default=None)  # JSON text
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

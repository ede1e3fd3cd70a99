from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlmodel import SQLModel

from playtime import normalize_clock


def _check_clock(v):
    # Empty strings mean "not given"; anything else must parse
    if v is None or v == "":
        return None
    return normalize_clock(v)


class PlayerCreate(BaseModel):
    telegram_handle: str
    ginza_username: str | None = None
    country: str | None = None
    status: str = "ACTIVE"
    last_active_at: datetime | None = None
    total_deposited: float = 0
    total_wagered: float = 0
    net_pnl: float = 0
    notes: str | None = None

    @field_validator("telegram_handle")
    @classmethod
    def validate_handle(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Telegram handle is required")
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        valid_statuses = {"ACTIVE", "FADING", "CHURNED"}
        if v not in valid_statuses:
            raise ValueError(f"Status must be one of: {valid_statuses}")
        return v


class PlayerResponse(SQLModel):
    id: int
    telegram_handle: str
    ginza_username: str | None = None
    country: str | None = None
    status: str
    last_active_at: datetime | None = None
    total_deposited: float
    total_wagered: float
    net_pnl: float
    notes: str | None = None
    created_at: datetime


class PlayerListRow(PlayerResponse):
    total_playtime: int
    total_playtime_label: str
    most_active_times: str
    last_gameplay_at: datetime | None = None
    value_score: float
    churn_status: str
    churn_risk: str


class PlaytimeEntryCreate(BaseModel):
    played_on: date
    start_time: str | None = None  # HH:mm or a full timestamp
    end_time: str | None = None  # HH:mm or a full timestamp
    minutes: int | None = Field(default=None, ge=0)
    stakes: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, v):
        return _check_clock(v)

    @model_validator(mode="after")
    def validate_duration(self):
        if bool(self.start_time) != bool(self.end_time):
            raise ValueError("Both start_time and end_time are required for a time range")
        if not self.start_time and self.minutes is None:
            raise ValueError("Either provide start and end times, or provide minutes manually")
        return self


class PlaytimeEntryUpdate(BaseModel):
    played_on: date | None = None
    start_time: str | None = None
    end_time: str | None = None
    minutes: int | None = Field(default=None, ge=0)
    stakes: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_clock(cls, v):
        return _check_clock(v)


class PlaytimeEntryResponse(SQLModel):
    id: int
    player_id: int
    played_on: date
    start_time: str | None = None
    end_time: str | None = None
    minutes: int
    stakes: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class PlaytimeSummary(BaseModel):
    last_7_days_minutes: int
    last_30_days_minutes: int
    this_month_minutes: int
    lifetime_minutes: int


class SeriesPoint(BaseModel):
    period: str
    minutes: int


class DatePoint(BaseModel):
    date: str
    minutes: int


class LeaderboardRow(BaseModel):
    player_id: int
    telegram_handle: str | None = None
    total_minutes: int
    data: list[DatePoint]


class RetentionResponse(BaseModel):
    total_players: int
    active_7d: int
    active_30d: int
    retention_7d: float
    retention_30d: float


class ActivityResponse(SQLModel):
    id: int
    actor: str
    entity_type: str
    entity_id: str
    action: str
    changes: str | None = None
    created_at: datetime

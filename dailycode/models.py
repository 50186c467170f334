from typing import Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DailyPuzzle(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    date: str = Field(index=True, unique=True)  # YYYY-MM-DD
    solution_json: str = ""
    total_players: int = 0
    completed_players: int = 0
    fastest_time: Optional[int] = None  # ms
    fastest_player: Optional[str] = None
    total_guesses: int = 0
    average_guesses: float = 0.0
    created_at: datetime = Field(default_factory=_utcnow)


class Player(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: str = Field(index=True, unique=True)
    username: Optional[str] = Field(default=None, index=True, unique=True)
    email: Optional[str] = Field(default=None, index=True, unique=True)
    password_hash: Optional[str] = None
    games_played: int = 0
    games_won: int = 0
    current_streak: int = 0
    max_streak: int = 0
    total_guesses: int = 0  # won games only
    last_play_date: Optional[str] = None
    fastest_time: Optional[int] = None  # ms
    created_at: datetime = Field(default_factory=_utcnow)


class GameRecord(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("player_ref", "date", name="uq_gamerecord_player_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    player_ref: int = Field(foreign_key="player.id", index=True)
    date: str
    won: bool = False
    guesses: int = 0
    time_ms: int = 0
    attempts_json: str = "[]"
    created_at: datetime = Field(default_factory=_utcnow)


class LeaderboardEntry(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    kind: str = "daily"  # daily | weekly | alltime
    date: str = ""
    player_id: str
    username: str = "Anonymous"
    score: float = 0.0
    time_ms: int = 0
    guesses: int = 0
    created_at: datetime = Field(default_factory=_utcnow)

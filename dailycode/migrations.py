"""
Tracked schema migrations for the daily code backend.
Each migration runs once and is recorded in the migration table.
"""

from sqlmodel import SQLModel, Field, text, Session, select
from typing import Optional
from datetime import datetime, timezone

from .logging_utils import get_logger

logger = get_logger("dailycode.migrations")


class Migration(SQLModel, table=True):
    """Track applied migrations"""
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)
    applied_at: datetime


MIGRATIONS = [
    ("001_leaderboard_indexes", """
    CREATE INDEX IF NOT EXISTS idx_leaderboard_kind_date_score ON leaderboardentry(kind, date, score);
    CREATE INDEX IF NOT EXISTS idx_leaderboard_player ON leaderboardentry(player_id)
    """),
    ("002_game_history_indexes", """
    CREATE INDEX IF NOT EXISTS idx_gamerecord_date ON gamerecord(date)
    """),
]


def ensure_migration_table(engine):
    Migration.metadata.create_all(engine, tables=[Migration.__table__])


def has_migration_been_applied(engine, migration_name: str) -> bool:
    ensure_migration_table(engine)
    with Session(engine) as session:
        result = session.exec(
            select(Migration).where(Migration.name == migration_name)
        ).first()
        return result is not None


def apply_migration(engine, migration_name: str, migration_sql: str) -> bool:
    """Apply a migration and record it. Returns False when it was already applied."""
    if has_migration_been_applied(engine, migration_name):
        logger.debug("migration_skipped", extra={"event": migration_name})
        return False

    with Session(engine) as session:
        try:
            for statement in migration_sql.strip().split(';'):
                statement = statement.strip()
                if statement:
                    session.execute(text(statement))
            session.add(Migration(name=migration_name, applied_at=datetime.now(timezone.utc)))
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error("migration_failed", extra={"event": migration_name, "error": str(e)})
            raise

    logger.info("migration_applied", extra={"event": migration_name})
    return True


def run_migrations(engine) -> int:
    """Run all pending migrations, returning how many were applied."""
    applied = sum(1 for name, sql in MIGRATIONS if apply_migration(engine, name, sql))
    logger.info("migrations_complete", extra={"event": f"applied={applied}"})
    return applied

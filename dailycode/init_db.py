from sqlmodel import create_engine, SQLModel
from . import config, crud, models  # noqa: F401  (models registers the tables)
from .logging_utils import get_logger
from .migrations import run_migrations

logger = get_logger("dailycode.init_db")


def make_engine(url: str = config.DATABASE_URL):
    if config.is_sqlite(url):
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
    )


def init_db(url: str = config.DATABASE_URL, migrate: bool = True):
    """Create the engine, tables and indexes, and install the engine for crud."""
    engine = make_engine(url)
    SQLModel.metadata.create_all(engine)
    if migrate:
        run_migrations(engine)
    crud.engine = engine
    logger.info("db_initialized", extra={"url": str(engine.url)})
    return engine


def close_db() -> None:
    if crud.engine is not None:
        crud.engine.dispose()
        crud.engine = None
        logger.info("db_closed")


if __name__ == '__main__':
    init_db()

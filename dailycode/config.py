import os

# override every value through the environment in production
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./dailycode.db")
TOKEN_SECRET = os.getenv("TOKEN_SECRET", "dev-secret-change-me")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LEADERBOARD_SIZE = int(os.getenv("LEADERBOARD_SIZE", "100"))

_DEFAULT_ORIGINS = ",".join([
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
])
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", _DEFAULT_ORIGINS).split(",") if o.strip()]


def is_sqlite(url: str = DATABASE_URL) -> bool:
    return url.startswith("sqlite")

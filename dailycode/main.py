from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session
from starlette.middleware.base import BaseHTTPMiddleware
from typing import List, Optional

import re
import time
import uuid

from . import config, crud, game, stats
from .deps import get_session
from .errors import DailyCodeError, NotFound, Unauthorized, ValidationFailure
from .init_db import close_db, init_db
from .logging_utils import setup_logging, get_logger, request_id_ctx

_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
_USERNAME_RE = re.compile(r'^[a-zA-Z0-9_-]+$')

# Rate limiting - store last request times per IP
_RATE_LIMIT_STORE: dict = {}


def check_rate_limit(request: Request, max_requests: int = 30, window_seconds: int = 60) -> bool:
    """
    Simple in-memory sliding-window rate limiting per client IP.
    Returns True if the request is allowed, False if rate limited.
    """
    client_ip = request.client.host if request.client else "unknown"
    current_time = time.time()

    cutoff_time = current_time - window_seconds
    _RATE_LIMIT_STORE[client_ip] = [
        req_time for req_time in _RATE_LIMIT_STORE.get(client_ip, [])
        if req_time > cutoff_time
    ]

    if len(_RATE_LIMIT_STORE[client_ip]) >= max_requests:
        return False

    _RATE_LIMIT_STORE[client_ip].append(current_time)
    return True


def rate_limit_dependency(max_requests: int = 30, window_seconds: int = 60):
    """Create a dependency function that raises HTTP 429 if rate limited"""
    def dependency(request: Request):
        if not check_rate_limit(request, max_requests, window_seconds):
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Maximum {max_requests} requests per {window_seconds} seconds."
            )
    return dependency


setup_logging(config.LOG_LEVEL)
logger = get_logger("dailycode")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # tests install their own engine before the app starts
    if crud.engine is None:
        init_db()
    yield
    close_db()


app = FastAPI(title="Daily Code", lifespan=lifespan)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        # JSON API only: nothing should be rendered or framed
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
        response.headers.setdefault('Referrer-Policy', 'strict-origin-when-cross-origin')
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('X-Frame-Options', 'DENY')
        response.headers.setdefault('Strict-Transport-Security', 'max-age=31536000; includeSubDomains')
        return response


app.add_middleware(SecurityHeadersMiddleware)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        token = request_id_ctx.set(rid)
        start = time.time()
        client = request.client.host if request.client else "-"
        ua = request.headers.get("user-agent", "-")
        response = None
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = rid
            return response
        except Exception:
            logger.exception(
                "request_error",
                extra={"path": str(request.url), "method": request.method},
            )
            raise
        finally:
            duration_ms = int((time.time() - start) * 1000)
            status = getattr(response, "status_code", 500)
            logger.info(
                "request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": status,
                    "duration_ms": duration_ms,
                    "client": client,
                    "user_agent": ua,
                },
            )
            request_id_ctx.reset(token)


app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Accept",
        "Accept-Language",
        "Content-Language",
        "Content-Type",
        "Authorization",
        "X-Requested-With",
        "X-Request-ID",
    ],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = jsonable_encoder(exc.errors())
    logger.warning("validation_error", extra={"method": request.method, "url": str(request.url), "errors": errors})
    return JSONResponse(
        status_code=422,
        content={
            "detail": errors,
            "message": "Input validation failed"
        }
    )


@app.exception_handler(DailyCodeError)
async def daily_code_error_handler(request: Request, exc: DailyCodeError):
    if exc.status_code >= 500:
        logger.error("request_failed", extra={"path": request.url.path, "error": exc.message})
    else:
        logger.info("request_rejected", extra={"path": request.url.path, "status": exc.status_code, "error": exc.message})
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("store_error", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse({"error": "internal store error"}, status_code=500)


def _validate_date_param(date: str) -> str:
    if date and not _DATE_RE.match(date):
        raise ValidationFailure("Invalid date format. Use YYYY-MM-DD")
    if date:
        try:
            game.parse_date(date)
        except ValueError:
            raise ValidationFailure("Invalid date. Use YYYY-MM-DD")
    return date or game.today_str()


def _check_username(v: str) -> str:
    v = v.strip()
    if len(v) == 0:
        raise ValueError('Username cannot be empty')
    if len(v) > 12:
        raise ValueError('Username too long (max 12 characters)')
    if not _USERNAME_RE.match(v):
        raise ValueError('Username can only contain letters, numbers, underscore, and hyphen')
    return v


def _bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get('authorization')
    if auth and auth.lower().startswith('bearer '):
        return auth.split(' ', 1)[1].strip() or None
    return None


class SubmitGameRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    player_id: str = Field(..., alias="playerId", min_length=1, max_length=64)
    date: str = Field(..., pattern=r'^\d{4}-\d{2}-\d{2}$')
    won: bool
    guesses: int = Field(..., ge=0, le=100)
    time: int = Field(..., ge=0, le=86_400_000)  # ms, up to 24 hours
    attempts: List[List[int]] = Field(default_factory=list)

    @field_validator('player_id')
    @classmethod
    def validate_player_id(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('playerId cannot be empty')
        return v


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1, max_length=12)
    email: Optional[str] = Field(None, max_length=254)
    password: str = Field(..., min_length=8, max_length=72)
    player_id: Optional[str] = Field(None, alias="playerId", max_length=64)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v):
        return _check_username(v)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v is None:
            return None
        v = v.strip().lower()
        if not v:
            return None
        if not re.match(r'^[^@\s]+@[^@\s]+\.[^@\s]+$', v):
            raise ValueError('Invalid email address')
        return v

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if not re.search(r'[a-z]', v):
            raise ValueError('Password must contain at least one lowercase letter')
        if not re.search(r'[A-Z]', v):
            raise ValueError('Password must contain at least one uppercase letter')
        if not re.search(r'\d', v):
            raise ValueError('Password must contain at least one number')
        return v


class LoginRequest(BaseModel):
    # username or email
    username: str = Field(..., min_length=1, max_length=254)
    password: str = Field(..., min_length=1, max_length=72)


@app.get("/health", include_in_schema=False)
def health():
    return JSONResponse({"status": "ok"})


@app.get("/api/puzzle/today")
def puzzle_today(duplicates: bool = False, session: Session = Depends(get_session)):
    puzzle = crud.get_or_create_puzzle(session, game.today_str(), allow_duplicates=duplicates)
    return stats.puzzle_summary(puzzle)


@app.get("/api/puzzle/yesterday")
def puzzle_yesterday(session: Session = Depends(get_session)):
    puzzle = crud.get_puzzle(session, game.yesterday_str())
    if puzzle is None:
        raise NotFound("Yesterday's puzzle not found")
    return stats.puzzle_summary(puzzle, include_solution=True)


@app.get("/api/puzzle/{date}")
def puzzle_by_date(date: str, session: Session = Depends(get_session)):
    """Archive lookup. The solution is only revealed once the date has passed."""
    actual_date = _validate_date_param(date)
    puzzle = crud.get_puzzle(session, actual_date)
    if puzzle is None:
        raise NotFound(f"Puzzle for {actual_date} not found")
    return stats.puzzle_summary(puzzle, include_solution=actual_date < game.today_str())


@app.post("/api/game/submit")
def submit_game(
    body: SubmitGameRequest,
    session: Session = Depends(get_session),
    _: None = Depends(rate_limit_dependency(max_requests=10, window_seconds=60))
):
    player, puzzle = crud.submit_game(
        session,
        player_id=body.player_id,
        date=body.date,
        won=body.won,
        guesses=body.guesses,
        time_ms=body.time,
        attempts=body.attempts,
    )
    return {
        "success": True,
        "stats": stats.raw_stats(player),
        "todayStats": stats.puzzle_summary(puzzle),
    }


@app.get("/api/player/{player_id}/stats")
def player_stats(player_id: str, session: Session = Depends(get_session)):
    player = crud.get_player_by_player_id(session, player_id)
    return {"stats": stats.player_stats(player)}


@app.get("/api/player/{player_id}/games")
def player_games(player_id: str, session: Session = Depends(get_session)):
    player = crud.get_player_by_player_id(session, player_id)
    games = [stats.game_entry(g) for g in crud.list_games(session, player)] if player else []
    return {"playerId": player_id, "games": games}


@app.get("/api/leaderboard/{kind}")
def leaderboard(
    kind: str,
    date: str = "",
    session: Session = Depends(get_session),
    _: None = Depends(rate_limit_dependency(max_requests=30, window_seconds=60))
):
    if kind == "daily":
        board_date: Optional[str] = _validate_date_param(date)
    elif kind == "weekly":
        board_date = game.week_start()
    else:
        board_date = None
    entries = crud.get_leaderboard(session, kind, board_date)
    return {
        "type": kind,
        "date": board_date,
        "entries": [stats.leaderboard_entry(e) for e in entries],
    }


@app.post("/api/auth/register")
def register(
    body: RegisterRequest,
    session: Session = Depends(get_session),
    _: None = Depends(rate_limit_dependency(max_requests=5, window_seconds=300))
):
    player = crud.register_player(
        session,
        username=body.username,
        password=body.password,
        email=body.email,
        player_id=body.player_id,
    )
    token = crud.sign_player_token(session, player.player_id)
    return {"token": token, "username": player.username, "playerId": player.player_id}


@app.post("/api/auth/login")
def login(
    body: LoginRequest,
    session: Session = Depends(get_session),
    _: None = Depends(rate_limit_dependency(max_requests=10, window_seconds=60))
):
    player = crud.authenticate(session, body.username.strip(), body.password)
    token = crud.sign_player_token(session, player.player_id)
    return {"token": token, "username": player.username, "playerId": player.player_id}


@app.get("/api/auth/me")
def whoami(request: Request, session: Session = Depends(get_session)):
    token = _bearer_token(request)
    if not token:
        raise Unauthorized("missing token")
    player_id = crud.verify_player_token(session, token)
    if player_id is None:
        raise Unauthorized("invalid token")
    player = crud.get_player_by_player_id(session, player_id)
    return {"playerId": player_id, "username": player.username if player else None}

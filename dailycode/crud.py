from sqlmodel import Session, select as sqlmodel_select
from sqlalchemy import desc, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from passlib.context import CryptContext
from typing import List, Optional, Sequence, Tuple
import hashlib
import hmac
import json
import uuid

from . import config, game, models
from .errors import Conflict, InternalFailure, NotFound, Unauthorized, ValidationFailure
from .logging_utils import get_logger

logger = get_logger("dailycode.crud")

pwd = CryptContext(schemes=["bcrypt"], deprecated="auto")
engine = None

LEADERBOARD_KINDS = ("daily", "weekly", "alltime")


def sign_player_token(session: Session, player_id: str) -> Optional[str]:
    """Sign a player id into an opaque "<player_id>.<sig>" token.

    Returns None when the player does not exist.
    """
    if not player_id or get_player_by_player_id(session, player_id) is None:
        return None
    sig = hmac.new(config.TOKEN_SECRET.encode(), player_id.encode(), hashlib.sha256).hexdigest()
    return f"{player_id}.{sig}"


def verify_player_token(session: Session, token: str) -> Optional[str]:
    try:
        player_id, sig = token.rsplit('.', 1)
    except (AttributeError, ValueError):
        return None
    expected = hmac.new(config.TOKEN_SECRET.encode(), player_id.encode(), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, sig):
        return None
    if get_player_by_player_id(session, player_id) is None:
        return None
    return player_id


def get_puzzle(session: Session, date: str) -> Optional[models.DailyPuzzle]:
    return session.exec(sqlmodel_select(models.DailyPuzzle).where(models.DailyPuzzle.date == date)).first()


def get_or_create_puzzle(session: Session, date: str, allow_duplicates: bool = False) -> models.DailyPuzzle:
    """Return the puzzle for date, generating and storing it on first read.

    The solution is only generated here; an existing row is never regenerated, so
    allow_duplicates only matters for whoever reads the date first.
    """
    puzzle = get_puzzle(session, date)
    if puzzle:
        return puzzle
    solution = game.daily_code(date, allow_duplicates)
    puzzle = models.DailyPuzzle(date=date, solution_json=json.dumps(solution))
    session.add(puzzle)
    try:
        session.commit()
    except IntegrityError:
        # another request created the same date first; keep its row
        session.rollback()
        existing = get_puzzle(session, date)
        if existing is None:
            raise InternalFailure(f"could not create puzzle for {date}")
        logger.info("puzzle_create_race", extra={"date": date})
        return existing
    session.refresh(puzzle)
    logger.info("puzzle_created", extra={"date": date})
    return puzzle


def get_player_by_player_id(session: Session, player_id: str) -> Optional[models.Player]:
    return session.exec(sqlmodel_select(models.Player).where(models.Player.player_id == player_id)).first()


def get_player_by_login(session: Session, login: str) -> Optional[models.Player]:
    # emails are stored lowercased at registration
    return session.exec(
        sqlmodel_select(models.Player)
        .where(or_(models.Player.username == login, models.Player.email == login.lower()))
    ).first()


def get_game(session: Session, player: models.Player, date: str) -> Optional[models.GameRecord]:
    if player.id is None:
        return None
    return session.exec(
        sqlmodel_select(models.GameRecord)
        .where(models.GameRecord.player_ref == player.id)
        .where(models.GameRecord.date == date)
    ).first()


def list_games(session: Session, player: models.Player) -> Sequence[models.GameRecord]:
    if player.id is None:
        return []
    return session.exec(
        sqlmodel_select(models.GameRecord)
        .where(models.GameRecord.player_ref == player.id)
        .order_by(models.GameRecord.date)
    ).all()


def score_for(guesses: int, time_ms: int) -> float:
    # unclamped: slow or high-guess wins go negative
    return 1000 - guesses * 100 - time_ms / 10


def record_win(session: Session, date: str, player: models.Player, guesses: int, time_ms: int,
               kind: str = "daily", commit: bool = True) -> models.LeaderboardEntry:
    """Insert a winning entry into the (kind, date) board and trim it to the top N.

    Ordering is score descending, then insertion order, so on equal scores the
    newest entry is the one evicted at the cap.
    """
    entry = models.LeaderboardEntry(
        kind=kind,
        date=date,
        player_id=player.player_id,
        username=player.username or "Anonymous",
        score=score_for(guesses, time_ms),
        time_ms=time_ms,
        guesses=guesses,
    )
    session.add(entry)
    session.flush()

    overflow = session.exec(
        sqlmodel_select(models.LeaderboardEntry)
        .where(models.LeaderboardEntry.kind == kind)
        .where(models.LeaderboardEntry.date == date)
        .order_by(desc(models.LeaderboardEntry.score), models.LeaderboardEntry.id)
        .offset(config.LEADERBOARD_SIZE)
    ).all()
    score = entry.score
    evicted = False
    for row in overflow:
        evicted = evicted or row is entry
        session.delete(row)

    if commit:
        session.commit()
        if not evicted:
            session.refresh(entry)
    logger.info(
        "leaderboard_updated",
        extra={"kind": kind, "date": date, "player_id": player.player_id, "score": score},
    )
    return entry


def get_leaderboard(session: Session, kind: str, date: Optional[str] = None,
                    limit: Optional[int] = None) -> Sequence[models.LeaderboardEntry]:
    if kind not in LEADERBOARD_KINDS:
        raise ValidationFailure(f"unknown leaderboard type: {kind}")
    stmt = sqlmodel_select(models.LeaderboardEntry).where(models.LeaderboardEntry.kind == kind)
    if date:
        stmt = stmt.where(models.LeaderboardEntry.date == date)
    stmt = stmt.order_by(desc(models.LeaderboardEntry.score), models.LeaderboardEntry.id)
    return session.exec(stmt.limit(limit or config.LEADERBOARD_SIZE)).all()


def _apply_player_result(player: models.Player, date: str, won: bool, guesses: int, time_ms: int) -> None:
    player.games_played += 1
    if won:
        player.games_won += 1
        player.total_guesses += guesses
        if player.last_play_date == game.previous_day(date):
            player.current_streak += 1
        else:
            player.current_streak = 1
        player.max_streak = max(player.max_streak, player.current_streak)
        if player.fastest_time is None or time_ms < player.fastest_time:
            player.fastest_time = time_ms
    else:
        player.current_streak = 0
    player.last_play_date = date


def _apply_puzzle_result(puzzle: models.DailyPuzzle, player: models.Player, won: bool,
                         guesses: int, time_ms: int) -> None:
    puzzle.total_players += 1
    if not won:
        return
    puzzle.completed_players += 1
    puzzle.total_guesses += guesses
    puzzle.average_guesses = puzzle.total_guesses / puzzle.completed_players
    if puzzle.fastest_time is None or time_ms < puzzle.fastest_time:
        puzzle.fastest_time = time_ms
        puzzle.fastest_player = player.username or player.player_id


def submit_game(session: Session, player_id: str, date: str, won: bool, guesses: int, time_ms: int,
                attempts: Optional[List[List[int]]] = None) -> Tuple[models.Player, models.DailyPuzzle]:
    """Record one finished game and update player, puzzle and leaderboard.

    Validation happens before anything is staged; all writes go out in a single
    commit. Returns the refreshed (player, puzzle).
    """
    try:
        game.parse_date(date)
    except ValueError:
        raise ValidationFailure(f"invalid date: {date}")

    puzzle = get_puzzle(session, date)
    if puzzle is None:
        raise NotFound(f"no puzzle for {date}")

    player = get_player_by_player_id(session, player_id)
    if player is not None and get_game(session, player, date) is not None:
        raise Conflict("Already played today")

    try:
        if player is None:
            player = models.Player(player_id=player_id)
            session.add(player)
            session.flush()
            logger.info("player_created", extra={"player_id": player_id})

        _apply_player_result(player, date, won, guesses, time_ms)
        session.add(player)
        session.add(models.GameRecord(
            player_ref=player.id,
            date=date,
            won=won,
            guesses=guesses,
            time_ms=time_ms,
            attempts_json=json.dumps(attempts or []),
        ))

        _apply_puzzle_result(puzzle, player, won, guesses, time_ms)
        session.add(puzzle)

        if won:
            record_win(session, date, player, guesses, time_ms, commit=False)
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.warning("duplicate_submission", extra={"player_id": player_id, "date": date})
        raise Conflict("Already played today")
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("submit_failed", extra={"player_id": player_id, "date": date})
        raise InternalFailure(str(e)) from e

    session.refresh(player)
    session.refresh(puzzle)
    logger.info(
        "game_submitted",
        extra={"player_id": player_id, "date": date, "won": won, "guesses": guesses, "time_ms": time_ms},
    )
    return player, puzzle


def register_player(session: Session, username: str, password: str, email: Optional[str] = None,
                    player_id: Optional[str] = None) -> models.Player:
    """Attach credentials to a player, creating the player when needed.

    A player that already has credentials cannot be registered again.
    """
    email = email.lower() if email else None
    clash = [models.Player.username == username]
    if email:
        clash.append(models.Player.email == email)
    if session.exec(sqlmodel_select(models.Player).where(or_(*clash))).first():
        raise Conflict("Username or email already exists")

    player = get_player_by_player_id(session, player_id) if player_id else None
    if player is None:
        player = models.Player(player_id=player_id or uuid.uuid4().hex)
    elif player.password_hash:
        raise Conflict("Player is already registered")
    player.username = username
    player.email = email
    player.password_hash = pwd.hash(password)
    session.add(player)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise Conflict("Username or email already exists")
    session.refresh(player)
    logger.info("player_registered", extra={"player_id": player.player_id})
    return player


def authenticate(session: Session, login: str, password: str) -> models.Player:
    player = get_player_by_login(session, login)
    if player is None or not player.password_hash:
        logger.info("login_failed", extra={"error": "unknown login"})
        raise Unauthorized("Invalid credentials")
    try:
        valid = pwd.verify(password, player.password_hash)
    except ValueError:
        valid = False
    if not valid:
        logger.info("login_failed", extra={"player_id": player.player_id, "error": "bad password"})
        raise Unauthorized("Invalid credentials")
    return player

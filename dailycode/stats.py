"""Display-ready aggregates derived from stored counters. Read-only."""
import json
import math
from typing import Any, Dict, Optional

from . import models


def win_rate(games_won: int, games_played: int) -> int:
    if games_played <= 0:
        return 0
    # halves round up, as on the clients
    return math.floor(games_won / games_played * 100 + 0.5)


def average_guesses(total_guesses: int, games_won: int) -> float:
    if games_won <= 0:
        return 0
    return math.floor(total_guesses / games_won * 10 + 0.5) / 10


def raw_stats(player: models.Player) -> Dict[str, Any]:
    return {
        "gamesPlayed": player.games_played,
        "gamesWon": player.games_won,
        "currentStreak": player.current_streak,
        "maxStreak": player.max_streak,
        "totalGuesses": player.total_guesses,
        "lastPlayDate": player.last_play_date,
        "fastestTime": player.fastest_time,
    }


def player_stats(player: Optional[models.Player]) -> Dict[str, Any]:
    if player is None:
        return {
            "gamesPlayed": 0,
            "gamesWon": 0,
            "currentStreak": 0,
            "maxStreak": 0,
            "totalGuesses": 0,
            "winRate": 0,
            "averageGuesses": 0,
        }
    stats = raw_stats(player)
    stats["winRate"] = win_rate(player.games_won, player.games_played)
    stats["averageGuesses"] = average_guesses(player.total_guesses, player.games_won)
    return stats


def puzzle_summary(puzzle: models.DailyPuzzle, include_solution: bool = False) -> Dict[str, Any]:
    # averageGuesses is maintained on the row by submit_game, not recomputed here
    out: Dict[str, Any] = {"date": puzzle.date}
    if include_solution:
        out["solution"] = json.loads(puzzle.solution_json or "[]")
    out.update({
        "totalPlayers": puzzle.total_players,
        "completedPlayers": puzzle.completed_players,
        "fastestTime": puzzle.fastest_time,
        "averageGuesses": puzzle.average_guesses,
    })
    return out


def game_entry(record: models.GameRecord) -> Dict[str, Any]:
    return {
        "date": record.date,
        "won": record.won,
        "guesses": record.guesses,
        "time": record.time_ms,
        "attempts": json.loads(record.attempts_json or "[]"),
    }


def leaderboard_entry(entry: models.LeaderboardEntry) -> Dict[str, Any]:
    return {
        "playerId": entry.player_id,
        "username": entry.username,
        "score": entry.score,
        "time": entry.time_ms,
        "guesses": entry.guesses,
    }

import json
from dailycode import models, stats


def test_win_rate_and_average():
    assert stats.win_rate(0, 0) == 0
    assert stats.win_rate(2, 3) == 67
    assert stats.win_rate(1, 3) == 33
    assert stats.win_rate(1, 8) == 13
    assert stats.average_guesses(0, 0) == 0
    assert stats.average_guesses(10, 3) == 3.3
    assert stats.average_guesses(9, 2) == 4.5
    # halves round up
    assert stats.average_guesses(9, 4) == 2.3


def test_player_stats_defaults_for_unknown_player():
    s = stats.player_stats(None)
    assert s == {
        "gamesPlayed": 0,
        "gamesWon": 0,
        "currentStreak": 0,
        "maxStreak": 0,
        "totalGuesses": 0,
        "winRate": 0,
        "averageGuesses": 0,
    }


def test_player_stats_derived_fields():
    p = models.Player(player_id='p1', games_played=4, games_won=3, total_guesses=11,
                      current_streak=2, max_streak=3, last_play_date='2025-01-02', fastest_time=4200)
    s = stats.player_stats(p)
    assert s["winRate"] == 75
    assert s["averageGuesses"] == 3.7
    assert s["fastestTime"] == 4200
    assert s["lastPlayDate"] == '2025-01-02'


def test_puzzle_summary_hides_solution_unless_asked():
    puzzle = models.DailyPuzzle(date='2025-01-01', solution_json=json.dumps([1, 2, 3, 4]),
                                total_players=5, completed_players=2, average_guesses=3.5)
    hidden = stats.puzzle_summary(puzzle)
    assert 'solution' not in hidden
    assert hidden['totalPlayers'] == 5 and hidden['averageGuesses'] == 3.5
    shown = stats.puzzle_summary(puzzle, include_solution=True)
    assert shown['solution'] == [1, 2, 3, 4]

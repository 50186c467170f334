import json
import logging
from sqlalchemy import inspect
from sqlmodel import Session
from dailycode import crud, init_db, migrations
from dailycode.logging_utils import JsonFormatter, PrettyFormatter, choose_formatter, request_id_ctx


def test_init_db_creates_tables_and_indexes(tmp_path):
    engine = init_db.init_db(f"sqlite:///{tmp_path / 'fresh.db'}")
    try:
        assert crud.engine is engine
        insp = inspect(engine)
        tables = set(insp.get_table_names())
        assert {'dailypuzzle', 'player', 'gamerecord', 'leaderboardentry', 'migration'} <= tables
        index_names = {ix['name'] for ix in insp.get_indexes('leaderboardentry')}
        assert 'idx_leaderboard_kind_date_score' in index_names
        # (player_ref, date) is already covered by the unique constraint
        game_indexes = {ix['name'] for ix in insp.get_indexes('gamerecord')}
        assert 'idx_gamerecord_date' in game_indexes
        assert 'idx_gamerecord_player_date' not in game_indexes
        with Session(engine) as s:
            assert crud.get_or_create_puzzle(s, '2024-01-01').id is not None
    finally:
        init_db.close_db()
    assert crud.engine is None


def test_migrations_run_once(engine):
    assert migrations.run_migrations(engine) == len(migrations.MIGRATIONS)
    assert migrations.run_migrations(engine) == 0
    assert migrations.has_migration_been_applied(engine, '001_leaderboard_indexes')


def _record(**extra):
    record = logging.LogRecord('dailycode.crud', logging.INFO, __file__, 1, 'game_submitted', None, None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_json_formatter_includes_game_fields():
    token = request_id_ctx.set('rid-1')
    try:
        out = json.loads(JsonFormatter().format(_record(player_id='p1', date='2025-01-01', won=True, guesses=3)))
    finally:
        request_id_ctx.reset(token)
    assert out['message'] == 'game_submitted'
    assert out['request_id'] == 'rid-1'
    assert out['player_id'] == 'p1' and out['won'] is True and out['guesses'] == 3


def test_pretty_formatter_without_color():
    line = PrettyFormatter(use_color=False).format(_record(kind='daily', score=800.0, method='POST', path='/api/game/submit', status=200))
    assert 'POST /api/game/submit 200' in line
    assert '[kind=daily score=800.0]' in line
    assert '\033[' not in line


def test_choose_formatter_from_env(monkeypatch):
    class Pipe:
        def isatty(self):
            return False

    class Tty:
        def isatty(self):
            return True

    monkeypatch.delenv('LOG_FORMAT', raising=False)
    assert isinstance(choose_formatter(Pipe()), JsonFormatter)
    assert isinstance(choose_formatter(Tty()), PrettyFormatter)

    monkeypatch.setenv('LOG_FORMAT', 'json')
    assert isinstance(choose_formatter(Tty()), JsonFormatter)

    monkeypatch.setenv('LOG_FORMAT', 'pretty')
    monkeypatch.setenv('LOG_COLOR', '0')
    fmt = choose_formatter(Pipe())
    assert isinstance(fmt, PrettyFormatter) and fmt.use_color is False

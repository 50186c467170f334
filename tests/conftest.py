import sys
from pathlib import Path
import pytest
from sqlmodel import SQLModel, create_engine

# Ensure project root is on sys.path so tests can import the `dailycode` package
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_rate_limiter():
	# Clear in-memory rate limiter between tests to avoid cross-test flakiness
	import dailycode.main as app_main
	app_main._RATE_LIMIT_STORE.clear()
	yield


@pytest.fixture
def engine(tmp_path):
	from dailycode import crud, models  # noqa: F401
	db = tmp_path / 'dailycode.db'
	eng = create_engine(f'sqlite:///{db}', connect_args={"check_same_thread": False})
	SQLModel.metadata.create_all(eng)
	crud.engine = eng
	yield eng
	crud.engine = None
	eng.dispose()

import asyncio
from fastapi.testclient import TestClient
from starlette.requests import Request

from dailycode.main import app, check_rate_limit


def test_rate_limit_window_edges(monkeypatch):
    import dailycode.main as app_main
    app_main._RATE_LIMIT_STORE.clear()

    # Control time
    t = [1000.0]
    monkeypatch.setattr(app_main.time, 'time', lambda: t[0])

    async def _dummy_receive():
        await asyncio.sleep(0)
        return {"type": "http.request"}
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [],
        "query_string": b"",
        "server": ("testserver", 80),
        "client": ("1.2.3.4", 12345),
        "scheme": "http",
    }
    req = Request(scope, _dummy_receive)

    assert check_rate_limit(req, max_requests=3, window_seconds=10) is True
    assert check_rate_limit(req, max_requests=3, window_seconds=10) is True
    assert check_rate_limit(req, max_requests=3, window_seconds=10) is True
    assert check_rate_limit(req, max_requests=3, window_seconds=10) is False

    # Advance beyond window; old entries should be pruned
    t[0] += 11
    assert check_rate_limit(req, max_requests=3, window_seconds=10) is True


def test_login_is_rate_limited(engine):
    client = TestClient(app)
    codes = [
        client.post('/api/auth/login', json={"username": "nobody", "password": "x"}).status_code
        for _ in range(11)
    ]
    assert codes[:10] == [401] * 10
    assert codes[10] == 429

from fastapi.testclient import TestClient

from kimiproxy.deps import get_session_store
from kimiproxy.routes import create_app
from kimiproxy.session_store import SessionStore

from fake_kimi import make_client


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _chat(client, key: str):
    return client.post(
        "/v1/chat/completions",
        json={"messages": [{"role": "user", "content": "hi"}]},
        headers={"X-Session-Id": key},
    )


def test_unknown_session_reports_only_the_key(fake_kimi):
    app = create_app(http_client=make_client(fake_kimi))

    with TestClient(app=app, base_url="http://test") as client:
        resp = client.get("/v1/session", headers={"X-Session-Id": "nobody"})

    assert resp.status_code == 200
    assert resp.json() == {"session_key": "nobody"}


def test_session_info_after_a_turn(fake_kimi):
    app = create_app(http_client=make_client(fake_kimi))

    with TestClient(app=app, base_url="http://test") as client:
        _chat(client, "k1")
        data = client.get("/v1/session", headers={"X-Session-Id": "k1"}).json()

    assert data["session_key"] == "k1"
    assert data["upstream_session_id"].startswith("session_")
    assert data["turn_count"] == 2
    assert 0 < data["ttl_ms_remaining"] <= 3600 * 1000


def test_reset_then_inspect_returns_no_session(fake_kimi):
    app = create_app(http_client=make_client(fake_kimi))
    headers = {"X-Session-Id": "k1"}

    with TestClient(app=app, base_url="http://test") as client:
        _chat(client, "k1")
        first = client.post("/v1/session/reset", headers=headers)
        second = client.post("/v1/session/reset", headers=headers)
        state = client.get("/v1/session", headers=headers)

    assert first.json() == {"ok": True, "cleared": True}
    assert second.json() == {"ok": True, "cleared": False}
    assert state.json() == {"session_key": "k1"}


def test_reset_accepts_session_id_in_body(fake_kimi):
    app = create_app(http_client=make_client(fake_kimi))

    with TestClient(app=app, base_url="http://test") as client:
        _chat(client, "body-key")
        resp = client.post("/v1/session/reset", json={"session_id": "body-key"})

    assert resp.json()["cleared"] is True


def test_session_without_any_key_issues_cookie(fake_kimi):
    app = create_app(http_client=make_client(fake_kimi))

    with TestClient(app=app, base_url="http://test") as client:
        resp = client.get("/v1/session")

    data = resp.json()
    assert list(data) == ["session_key"]
    assert resp.headers["set-cookie"].startswith(f"sid={data['session_key']}")


def test_expired_session_reads_as_absent(fake_kimi):
    clock = FakeClock()
    store = SessionStore(60, clock=clock)
    store.get_or_create("k1")

    app = create_app(http_client=make_client(fake_kimi))
    app.dependency_overrides[get_session_store] = lambda: store

    with TestClient(app=app, base_url="http://test") as client:
        live = client.get("/v1/session", headers={"X-Session-Id": "k1"}).json()
        clock.now = 60.0
        expired = client.get("/v1/session", headers={"X-Session-Id": "k1"}).json()

    assert live["ttl_ms_remaining"] == 60000
    assert expired == {"session_key": "k1"}

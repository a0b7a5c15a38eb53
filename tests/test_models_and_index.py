from fastapi.testclient import TestClient

from kimiproxy.routes import create_app
from kimiproxy.settings import settings

from fake_kimi import make_client


def test_models_lists_exactly_the_known_set(fake_kimi):
    app = create_app(http_client=make_client(fake_kimi))

    with TestClient(app=app, base_url="http://test") as client:
        resp = client.get("/v1/models")

    assert resp.status_code == 200
    data = resp.json()
    assert data["object"] == "list"
    assert [m["id"] for m in data["data"]] == [
        "kimi-k2-instruct-0905",
        "kimi-k2-instruct",
    ]
    for item in data["data"]:
        assert item["object"] == "model"
        assert item["owned_by"] == settings.models_owned_by
        assert isinstance(item["created"], int)


def test_models_follow_configured_model_map(fake_kimi, monkeypatch):
    monkeypatch.setattr(settings, "known_model_map", {"kimi-test": "moonshotai/Test"})
    app = create_app(http_client=make_client(fake_kimi))

    with TestClient(app=app, base_url="http://test") as client:
        data = client.get("/v1/models").json()

    assert [m["id"] for m in data["data"]] == ["kimi-test"]
    assert fake_kimi.page_calls == 0


def test_index_page_is_html(fake_kimi):
    app = create_app(http_client=make_client(fake_kimi))

    with TestClient(app=app, base_url="http://test") as client:
        resp = client.get("/")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert settings.app_name in resp.text
    assert "/v1/chat/completions" in resp.text


def test_health_reports_live_sessions(fake_kimi):
    app = create_app(http_client=make_client(fake_kimi))

    with TestClient(app=app, base_url="http://test") as client:
        before = client.get("/health").json()
        client.post(
            "/v1/chat/completions",
            json={"session_id": "h", "messages": [{"role": "user", "content": "hi"}]},
        )
        after = client.get("/health").json()

    assert before == {"status": "ok", "sessions": 0}
    assert after == {"status": "ok", "sessions": 1}

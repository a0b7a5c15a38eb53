"""
Shared pytest configuration.

This file ensures the project root is on sys.path so that
`import kimiproxy` works consistently in all tests.
"""

import sys
from pathlib import Path

import pytest


# Ensure project root is importable for test modules.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from kimiproxy.settings import settings  # noqa: E402

from fake_kimi import CHAT_PAGE_URL, UPSTREAM_URL, FakeKimi  # noqa: E402


@pytest.fixture
def fake_kimi() -> FakeKimi:
    return FakeKimi()


@pytest.fixture(autouse=True)
def upstream_settings(monkeypatch):
    """
    Point the upstream URLs at the fake and disable typing delay.
    """
    monkeypatch.setattr(settings, "chat_page_url", CHAT_PAGE_URL, raising=False)
    monkeypatch.setattr(settings, "upstream_url", UPSTREAM_URL, raising=False)
    monkeypatch.setattr(settings, "stream_char_delay", 0.0, raising=False)
    monkeypatch.setattr(settings, "session_ttl_seconds", 3600, raising=False)
    monkeypatch.setattr(settings, "session_max_history_messages", 0, raising=False)
    monkeypatch.setattr(
        settings,
        "known_model_map",
        {
            "kimi-k2-instruct-0905": "moonshotai/Kimi-K2-Instruct-0905",
            "kimi-k2-instruct": "moonshotai/Kimi-K2-Instruct",
        },
        raising=False,
    )
    monkeypatch.setattr(settings, "default_model", "kimi-k2-instruct-0905", raising=False)
    yield

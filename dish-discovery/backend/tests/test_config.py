from __future__ import annotations

from config import Configuration
from utils import mask_secret


def test_from_env_reads_and_skips_blank(monkeypatch) -> None:
    monkeypatch.setenv("STORE_BACKEND", "firestore")
    monkeypatch.setenv("FIRESTORE_PROJECT_ID", "demo")
    monkeypatch.setenv("REVIEW_FANOUT_LIMIT", "8")
    monkeypatch.setenv("FALLBACK_DEBOUNCE_MS", "")
    monkeypatch.delenv("GOOGLE_PLACES_API_KEY", raising=False)

    cfg = Configuration.from_env()

    assert cfg.store_backend == "firestore"
    assert cfg.firestore_project_id == "demo"
    assert cfg.review_fanout_limit == 8
    assert cfg.fallback_debounce_ms == 500
    assert cfg.fallback_debounce_sec == 0.5
    assert not cfg.fallback_enabled


def test_overrides_win_over_env(monkeypatch) -> None:
    monkeypatch.setenv("MENU_ITEM_LIMIT", "10")
    cfg = Configuration.from_env({"menu_item_limit": 25, "google_places_api_key": "abcdefghijkl", "log_level": None})
    assert cfg.menu_item_limit == 25
    assert cfg.fallback_enabled
    assert cfg.log_level == "INFO"


def test_log_summary_masks_keys() -> None:
    cfg = Configuration(google_places_api_key="abcdefghijkl")
    summary = cfg.log_summary()
    assert "abcdefghijkl" not in summary
    assert "places_key=abcd...ijkl" in summary
    assert "fanout=unbounded" in summary
    assert mask_secret(None) == "unset"
    assert mask_secret("short") == "*****"

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

import core.config as config_module
from app import create_app


@pytest.fixture(autouse=True)
def reset_settings_cache(monkeypatch):
    monkeypatch.setenv("APP_ENV", "test")
    config_module.get_settings.cache_clear()
    yield
    config_module.get_settings.cache_clear()


@pytest.fixture
def client():
    with TestClient(create_app()) as c:
        yield c


def _volta_payload() -> dict:
    return {
        "title": "volta",
        "systems": [
            {
                "barlines": [
                    {"position": 0, "bar_type": "repeat_start"},
                    {"position": 4},
                    {"position": 7, "bar_type": "repeat_end", "repeat_count": 2},
                    {"position": 10},
                    {"position": 12},
                ],
                "alternate_endings": [
                    {"position": 5, "numbers": [1]},
                    {"position": 8, "numbers": [2]},
                ],
            }
        ],
    }


def _nested_payload() -> dict:
    return {
        "systems": [
            {
                "barlines": [
                    {"position": 0, "bar_type": "repeat_start"},
                    {"position": 2, "bar_type": "repeat_start"},
                    {"position": 4, "bar_type": "repeat_end"},
                    {"position": 6, "bar_type": "repeat_end"},
                    {"position": 8},
                ]
            }
        ]
    }


def test_index_lists_sections(client):
    r = client.post("/api/v1/repeats/index", json=_volta_payload())
    assert r.status_code == 200, r.text
    body = r.json()

    assert body["title"] == "volta"
    assert body["section_count"] == 1
    sec = body["sections"][0]
    assert sec["start"] == {"system": 0, "position": 0}
    assert sec["last_end_bar"] == {"system": 0, "position": 7}
    assert sec["repeat_counts"] == [2]
    # JSON object keys are strings
    assert sec["alternate_endings"] == {
        "1": {"system": 0, "position": 5},
        "2": {"system": 0, "position": 8},
    }


def test_index_sections_in_start_order(client):
    body = client.post("/api/v1/repeats/index", json=_nested_payload()).json()
    assert [s["start"]["position"] for s in body["sections"]] == [0, 2]


def test_find_innermost(client):
    r = client.post("/api/v1/repeats/find?system=0&position=3", json=_nested_payload())
    assert r.status_code == 200, r.text
    assert r.json()["start"] == {"system": 0, "position": 2}

    r2 = client.post("/api/v1/repeats/find?system=0&position=5", json=_nested_payload())
    assert r2.json()["start"] == {"system": 0, "position": 0}


def test_find_not_found(client):
    r = client.post("/api/v1/repeats/find?system=0&position=11", json=_volta_payload())
    assert r.status_code == 404


def test_find_rejects_negative_query(client):
    r = client.post("/api/v1/repeats/find?system=-1&position=0", json=_volta_payload())
    assert r.status_code == 422


def test_playback_order(client):
    r = client.post("/api/v1/repeats/playback", json=_volta_payload())
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["step_count"] == 10
    assert [loc["position"] for loc in body["locations"]] == [0, 4, 5, 7, 0, 4, 5, 8, 10, 12]


def test_playback_limit(client):
    r = client.post("/api/v1/repeats/playback?max_steps=3", json=_volta_payload())
    assert r.status_code == 422
    body = r.json()
    assert "exceeded 3 steps" in body["detail"]
    assert body["max_steps"] == 3
    assert body["location"] == {"system": 0, "position": 7}


def test_check_endpoint(client):
    r = client.post("/api/v1/repeats/check", json=_volta_payload())
    assert r.json() == {"ok": True, "issues": []}

    broken = {
        "systems": [
            {
                "barlines": [
                    {"position": 0},
                    {"position": 4, "bar_type": "repeat_end"},
                    {"position": 8, "bar_type": "repeat_end"},
                ]
            }
        ]
    }
    body = client.post("/api/v1/repeats/check", json=broken).json()
    assert body["ok"] is False
    assert [i["kind"] for i in body["issues"]] == ["unmatched_repeat_end"]
    assert body["issues"][0]["location"] == {"system": 0, "position": 8}


def test_invalid_score_is_422(client):
    bad = {"systems": [{"barlines": [{"position": 1}, {"position": 1}]}]}
    r = client.post("/api/v1/repeats/index", json=bad)
    assert r.status_code == 422


def test_root_points_to_docs(client):
    body = client.get("/").json()
    assert body["service"] == "repeatmap"
    assert body["docs_url"] == "/docs"

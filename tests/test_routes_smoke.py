"""Smoke tests for API routes."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from cbse_practice.api.cors import preflight_middleware
from cbse_practice.api.routes import bearer_token, router
from cbse_practice.errors import Unauthorized, UpstreamReadFailure, UpstreamWriteFailure

AUTH = {"Authorization": "Bearer token-abc"}


@pytest.fixture
def mock_settings():
    settings = MagicMock()
    settings.recent_rewards_limit = 10
    return settings


@pytest.fixture
def store():
    store = MagicMock()
    store.__aenter__.return_value = store
    store.__aexit__.return_value = False
    store.resolve_user = AsyncMock(return_value="user-1")
    store.fetch_profile = AsyncMock(return_value={"id": "user-1", "name": "Asha"})
    store.fetch_performance = AsyncMock(return_value=[{"streak_days": 3, "tokens": 20}])
    store.fetch_sessions_since = AsyncMock(return_value=[
        {"duration_seconds": 600, "tasks_completed": 10, "tasks_correct": 7},
    ])
    store.fetch_game_progress = AsyncMock(return_value=[
        {"game_id": "1", "difficulty": "easy", "completed_at": "2026-10-18T10:00:00Z", "stars_earned": 2},
    ])
    store.fetch_recent_rewards = AsyncMock(return_value=[])
    store.fetch_games = AsyncMock(return_value=[
        {"id": "1", "chapter": "Motion", "game_number": 1},
        {"id": "2", "chapter": "Motion", "game_number": 2},
    ])
    store.fetch_game = AsyncMock(return_value={"id": "1", "chapter": "Motion"})
    store.upsert_game_progress = AsyncMock(side_effect=lambda row: row)
    store.upsert_performance = AsyncMock(side_effect=lambda row: row)
    store.insert_rewards = AsyncMock()
    store.insert_task_result = AsyncMock()
    store.insert_analytics_event = AsyncMock()
    return store


@pytest.fixture
def open_store(store):
    return MagicMock(return_value=store)


@pytest.fixture
def client(mock_settings, open_store):
    app = FastAPI()
    app.middleware("http")(preflight_middleware)
    app.include_router(router)
    with (
        patch("cbse_practice.api.routes.get_settings", return_value=mock_settings),
        patch("cbse_practice.api.routes.open_store", open_store),
    ):
        with TestClient(app) as c:
            yield c


class TestHealthCheck:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestBearerToken:
    def test_extracts_token(self):
        assert bearer_token("Bearer abc.def") == "abc.def"
        assert bearer_token("bearer   xyz ") == "xyz"

    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer   ", "Basic abc", "abc"])
    def test_rejects_malformed(self, header):
        with pytest.raises(Unauthorized):
            bearer_token(header)


class TestGetUserStats:
    def test_returns_snapshot(self, client, open_store):
        response = client.post("/api/get-user-stats", headers=AUTH)
        assert response.status_code == 200
        data = response.json()
        assert data["stats"]["minutesToday"] == 10
        assert data["stats"]["tasksToday"] == 10
        assert data["stats"]["accuracyToday"] == 70
        assert data["stats"]["streak"] == 3
        assert data["stats"]["totalTokens"] == 20
        assert data["stats"]["totalStars"] == 2
        assert data["stats"]["completedLevels"] == 1
        assert data["chapterStats"]["Motion"] == {
            "totalGames": 2,
            "completedGames": 1,
            "totalStars": 2,
        }
        assert data["profile"]["name"] == "Asha"
        assert set(data) == {
            "profile",
            "performance",
            "todaySessions",
            "gameProgress",
            "rewards",
            "chapterStats",
            "stats",
        }
        open_store.assert_called_once_with("token-abc")

    def test_rewards_limit_comes_from_settings(self, client, store, mock_settings):
        mock_settings.recent_rewards_limit = 5
        client.post("/api/get-user-stats", headers=AUTH)
        store.fetch_recent_rewards.assert_awaited_once_with("user-1", limit=5)

    def test_get_is_accepted(self, client):
        response = client.get("/api/get-user-stats", headers=AUTH)
        assert response.status_code == 200

    def test_body_is_ignored(self, client):
        response = client.post("/api/get-user-stats", headers=AUTH, json={"user_id": "someone-else"})
        assert response.status_code == 200
        assert response.json()["profile"]["id"] == "user-1"

    def test_missing_credential_is_unauthorized(self, client, open_store, store):
        response = client.post("/api/get-user-stats")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        open_store.assert_not_called()
        for read in (
            store.fetch_profile,
            store.fetch_performance,
            store.fetch_sessions_since,
            store.fetch_game_progress,
            store.fetch_recent_rewards,
            store.fetch_games,
        ):
            assert read.await_count == 0

    def test_rejected_credential_is_unauthorized(self, client, store):
        store.resolve_user.side_effect = Unauthorized()
        response = client.post("/api/get-user-stats", headers=AUTH)
        assert response.status_code == 401
        assert "Unauthorized" in response.json()["error"]
        assert store.fetch_profile.await_count == 0
        assert store.fetch_performance.await_count == 0

    def test_read_failure_is_server_error(self, client, store):
        store.fetch_performance.side_effect = UpstreamReadFailure("user_performance", "HTTP 503")
        response = client.post("/api/get-user-stats", headers=AUTH)
        assert response.status_code == 500
        data = response.json()
        assert isinstance(data["error"], str)
        assert "user_performance" in data["error"]
        assert "stats" not in data
        assert "chapterStats" not in data

    def test_malformed_row_is_json_error(self, client, store):
        store.fetch_game_progress.return_value = [{"difficulty": "easy", "stars_earned": 2}]
        response = client.post("/api/get-user-stats", headers=AUTH)
        assert response.status_code == 500
        assert response.headers["content-type"].startswith("application/json")
        assert "game_progress" in response.json()["error"]

    def test_fractional_session_duration(self, client, store):
        store.fetch_sessions_since.return_value = [
            {"duration_seconds": 90.5, "tasks_completed": 4, "tasks_correct": 3},
        ]
        response = client.post("/api/get-user-stats", headers=AUTH)
        assert response.status_code == 200
        assert response.json()["stats"]["minutesToday"] == 2
        assert response.json()["stats"]["accuracyToday"] == 75


class TestPreflight:
    def test_options_returns_empty_body(self, client, open_store):
        response = client.options("/api/get-user-stats")
        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == "*"
        assert "authorization" in response.headers["access-control-allow-headers"]
        open_store.assert_not_called()


class TestGetGames:
    def test_lists_games_with_progress(self, client, store):
        response = client.post("/api/get-games", headers=AUTH, json={"chapter": "Motion"})
        assert response.status_code == 200
        listed = response.json()["games"]
        assert [g["id"] for g in listed] == ["1", "2"]
        assert listed[0]["progress"]["easy"]["stars_earned"] == 2
        assert listed[0]["progress"]["hard"] is None
        assert listed[1]["progress"] == {"easy": None, "medium": None, "hard": None}
        store.fetch_games.assert_awaited_once_with(chapter="Motion")

    def test_unknown_chapter_is_empty(self, client, store):
        store.fetch_games.return_value = []
        response = client.post("/api/get-games", headers=AUTH, json={"chapter": "Astrology"})
        assert response.status_code == 200
        assert response.json() == {"games": []}
        assert store.fetch_game_progress.await_count == 0

    def test_requires_credential(self, client):
        response = client.post("/api/get-games", json={"chapter": "Motion"})
        assert response.status_code == 401


class TestUpdateGameProgress:
    def test_first_completion(self, client, store):
        store.fetch_game_progress.return_value = []
        response = client.post(
            "/api/update-game-progress",
            headers=AUTH,
            json={
                "gameId": "2",
                "difficulty": "easy",
                "starsEarned": 1,
                "accuracy": 60,
                "questionsCompleted": 5,
                "hintsUsed": 1,
                "completed": True,
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["rewardsEarned"] == 1
        assert data["progress"]["user_id"] == "user-1"
        assert data["progress"]["completed_at"] is not None

    def test_invalid_difficulty_rejected(self, client, store):
        response = client.post(
            "/api/update-game-progress",
            headers=AUTH,
            json={"gameId": "2", "difficulty": "extreme", "starsEarned": 1, "accuracy": 60},
        )
        assert response.status_code == 422
        assert store.upsert_game_progress.await_count == 0

    def test_write_failure_is_server_error(self, client, store):
        store.fetch_game_progress.return_value = []
        store.upsert_game_progress.side_effect = UpstreamWriteFailure("game_progress", "HTTP 409")
        response = client.post(
            "/api/update-game-progress",
            headers=AUTH,
            json={"gameId": "2", "difficulty": "easy", "starsEarned": 1, "accuracy": 60},
        )
        assert response.status_code == 500
        assert "game_progress" in response.json()["error"]


class TestSubmitResult:
    def test_correct_answer_awards_tokens(self, client, store):
        store.fetch_performance.return_value = []
        response = client.post(
            "/api/submit-result",
            headers=AUTH,
            json={
                "sessionId": "s1",
                "taskId": "t1",
                "subject": "Physics",
                "topic": "Motion",
                "difficulty": 2,
                "correct": True,
                "responseTimeMs": 8000,
                "hintsUsed": 0,
                "skipped": False,
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["tokens"] == 10
        assert data["streakDays"] == 1
        store.insert_task_result.assert_awaited_once()

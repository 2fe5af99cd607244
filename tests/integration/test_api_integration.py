"""Integration tests for the REST API with a real database."""

from datetime import datetime
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import article_payload, make_llm_response, seed_website
from contenthub_daemon.api import app, get_storage
from contenthub_daemon.auth import get_config
from contenthub_daemon.config import Config
from contenthub_daemon.errors import PersistenceError
from contenthub_daemon.models import KeywordStatus
from contenthub_daemon.storage import Storage

API_KEY = "test-api-key"
HEADERS = {"X-API-Key": API_KEY}


def _config(**overrides) -> Config:
    values = dict(
        interval_minutes=30,
        policy="exhaustive",
        rotation_slot_minutes=30,
        stale_after_minutes=120,
        llm_provider="openrouter",
        llm_model="openrouter/anthropic/claude-3-haiku",
        llm_api_key="test-key",
        api_key=API_KEY,
        api_host="127.0.0.1",
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def config() -> Config:
    return _config()


@pytest.fixture
def api_client(test_db: Path, config: Config) -> TestClient:
    """Test client wired to the test database and an in-memory config."""

    async def override_get_storage() -> AsyncGenerator[Storage, None]:
        storage = Storage(test_db)
        try:
            yield storage
        finally:
            storage.close()

    async def override_get_config() -> Config:
        return config

    app.dependency_overrides[get_storage] = override_get_storage
    app.dependency_overrides[get_config] = override_get_config
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_api_auth_required(api_client: TestClient) -> None:
    """
    INVARIANT: API key required for all generation endpoints
    BREAKS: Anyone on the network can spend AI budget
    """
    protected = [
        ("POST", "/api/generation/run"),
        ("POST", "/api/keyword-plans/some-id/generate"),
        ("GET", "/api/generation-tasks"),
    ]

    for method, path in protected:
        response = api_client.request(method, path)
        assert response.status_code == 403, f"{method} {path} must require auth"
        data = response.json()
        assert data["success"] is False
        assert "API key" in data["message"]

        response = api_client.request(method, path, headers={"X-API-Key": "wrong-key"})
        assert response.status_code == 403


def test_health_needs_no_auth(api_client: TestClient, test_db: Path) -> None:
    with Storage(test_db) as storage:
        site = seed_website(storage)
        storage.add_keyword_plan(site, "hiking boots")

    response = api_client.get("/health")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["database"] == "connected"
    assert data["keyword_plans"]["pending"] == 1


def test_trigger_run_returns_summary(api_client: TestClient, test_db: Path) -> None:
    with Storage(test_db) as storage:
        site = seed_website(storage, max_articles_per_day=1)
        storage.add_keyword_plan(site, "hiking boots")
        storage.add_keyword_plan(site, "trail runners")

    with patch("litellm.completion", return_value=make_llm_response(article_payload())):
        response = api_client.post("/api/generation/run", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["processed"] == 1
    assert body["data"]["generated"] == 1
    assert body["data"]["failed"] == 0
    assert body["data"]["policy"] == "exhaustive"
    assert body["data"]["websites"][0]["generated"] == 1


def test_trigger_run_with_nothing_to_do(api_client: TestClient) -> None:
    response = api_client.post("/api/generation/run", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["data"]["websites"] == []


def test_trigger_run_reports_configuration_error_as_500(
    api_client: TestClient, test_db: Path, config: Config
) -> None:
    config.llm_api_key = "env:OPENROUTER_API_KEY"
    with Storage(test_db) as storage:
        site = seed_website(storage)
        storage.add_keyword_plan(site, "hiking boots")

    with patch("litellm.completion") as mock_completion:
        response = api_client.post("/api/generation/run", headers=HEADERS)

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert "Configuration error" in body["message"]
    assert body["data"]["error"] == body["message"]
    mock_completion.assert_not_called()


def test_manual_generation(api_client: TestClient, test_db: Path) -> None:
    with Storage(test_db) as storage:
        site = seed_website(storage, auto_generate_enabled=False)
        plan_id = storage.add_keyword_plan(site, "hiking boots")

    with patch("litellm.completion", return_value=make_llm_response(article_payload(), 900)):
        response = api_client.post(f"/api/keyword-plans/{plan_id}/generate", headers=HEADERS)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["outcome"] == "generated"
    assert data["status"] == "generated"
    assert data["article_id"] is not None
    assert data["task"]["type"] == "manual"
    assert data["task"]["tokens_used"] == 900

    # Not pending anymore
    response = api_client.post(f"/api/keyword-plans/{plan_id}/generate", headers=HEADERS)
    assert response.status_code == 409
    assert response.json()["data"]["status"] == "generated"


def test_manual_generation_failure_is_502(api_client: TestClient, test_db: Path) -> None:
    with Storage(test_db) as storage:
        site = seed_website(storage)
        plan_id = storage.add_keyword_plan(site, "hiking boots")

    with patch("litellm.completion", side_effect=Exception("500 upstream exploded")):
        response = api_client.post(f"/api/keyword-plans/{plan_id}/generate", headers=HEADERS)

    assert response.status_code == 502
    body = response.json()
    assert "upstream exploded" in body["message"]
    assert body["data"]["status"] == KeywordStatus.FAILED.value
    assert body["data"]["task"]["status"] == "failed"


def test_manual_generation_unknown_plan(api_client: TestClient) -> None:
    response = api_client.post("/api/keyword-plans/missing/generate", headers=HEADERS)

    assert response.status_code == 404
    assert "Keyword plan not found" in response.json()["message"]


def test_list_generation_tasks_with_filters(api_client: TestClient, test_db: Path) -> None:
    with Storage(test_db) as storage:
        site = seed_website(storage, created_at=datetime(2024, 1, 1))
        other = seed_website(storage, "Other Site", created_at=datetime(2024, 1, 2))
        plan_id = storage.add_keyword_plan(site, "hiking boots")
        other_plan = storage.add_keyword_plan(other, "camp stoves")

    with patch("litellm.completion") as mock_completion:
        mock_completion.side_effect = [
            make_llm_response(article_payload()),
            make_llm_response(article_payload(omit=("title",))),
        ]
        api_client.post("/api/generation/run", headers=HEADERS)

    response = api_client.get("/api/generation-tasks", headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["data"]["total"] == 2

    response = api_client.get(
        "/api/generation-tasks", params={"status": "failed"}, headers=HEADERS
    )
    tasks = response.json()["data"]["tasks"]
    assert [t["keyword_plan_id"] for t in tasks] == [other_plan]
    assert "title" in tasks[0]["error_message"]

    response = api_client.get(
        "/api/generation-tasks", params={"website_id": site}, headers=HEADERS
    )
    assert [t["keyword_plan_id"] for t in response.json()["data"]["tasks"]] == [plan_id]


def test_list_generation_tasks_rejects_bad_filters(api_client: TestClient) -> None:
    response = api_client.get(
        "/api/generation-tasks", params={"status": "exploded"}, headers=HEADERS
    )
    assert response.status_code == 422
    assert response.json()["success"] is False

    response = api_client.get("/api/generation-tasks", params={"limit": 0}, headers=HEADERS)
    assert response.status_code == 422


def test_database_failure_is_500(api_client: TestClient) -> None:
    with patch.object(
        Storage, "list_generation_tasks", side_effect=PersistenceError("disk I/O error")
    ):
        response = api_client.get("/api/generation-tasks", headers=HEADERS)

    assert response.status_code == 500
    assert "disk I/O error" in response.json()["message"]

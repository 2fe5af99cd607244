"""Shared test fixtures for all tests."""

import json
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional
from unittest.mock import Mock, patch

import pytest

# Use the bundled model cost map instead of fetching it on litellm import
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from contenthub_daemon import circuit_breaker, database, observability
from contenthub_daemon.generator import ArticleGenerator, LLMSettings
from contenthub_daemon.orchestrator import GenerationOrchestrator
from contenthub_daemon.scheduling import ExhaustivePolicy
from contenthub_daemon.storage import Storage

FIXED_NOW = datetime(2024, 6, 12, 10, 15, 0)


@pytest.fixture
def test_db(monkeypatch) -> Path:
    """Create a temporary test database for each test."""
    temp_dir = tempfile.mkdtemp()

    # Set XDG_DATA_HOME so Storage() uses our test directory
    data_dir = Path(temp_dir) / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("XDG_DATA_HOME", str(data_dir))

    # Now Storage() will use data_dir/contenthub/contenthub.db
    db_path = data_dir / "contenthub" / "contenthub.db"
    db_path.parent.mkdir(parents=True, exist_ok=True)

    database.init_db(db_path)

    yield db_path

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolated_observability(tmp_path_factory, monkeypatch) -> Path:
    """Send observability events to a per-test directory."""
    obs_dir = tmp_path_factory.mktemp("observability")
    monkeypatch.setattr(
        observability, "_logger", observability.ObservabilityLogger(obs_dir)
    )
    yield obs_dir
    observability._logger = None


@pytest.fixture(autouse=True)
def fresh_circuit_breaker() -> None:
    circuit_breaker.reset_circuit_breaker()
    yield
    circuit_breaker.reset_circuit_breaker()


@pytest.fixture(autouse=True)
def no_cost_lookup() -> None:
    """Mock responses have no pricing data."""
    with patch("contenthub_daemon.generator.completion_cost", return_value=0.0):
        yield


def article_payload(omit: tuple = (), **overrides) -> str:
    """Model output with the article JSON inside a fenced block."""
    fields = {
        "title": "Best Hiking Boots for Beginners",
        "content": "## Why boots matter\n\nGood **boots** keep you safe on the trail.",
        "seoTitle": "Best Hiking Boots for Beginners (2024 Guide)",
        "seoDescription": "Find the best hiking boots for beginners with our complete guide.",
    }
    fields.update(overrides)
    for name in omit:
        fields.pop(name, None)
    return f"Here is your article:\n\n```json\n{json.dumps(fields)}\n```"


def make_llm_response(content: Optional[str], total_tokens: Optional[int] = 1500) -> Mock:
    """Build a litellm-shaped completion response.

    total_tokens=None gives a response without usage data.
    """
    response = Mock()
    message = Mock()
    message.content = content
    choice = Mock()
    choice.message = message
    response.choices = [choice]
    response.usage = Mock(total_tokens=total_tokens) if total_tokens is not None else None
    return response


@pytest.fixture
def llm_settings() -> LLMSettings:
    return LLMSettings(
        provider="openrouter",
        model="openrouter/anthropic/claude-3-haiku",
        api_key="test-key",
        temperature=0.7,
        max_tokens=4000,
        timeout_seconds=30,
    )


@pytest.fixture
def storage(test_db: Path) -> Storage:
    storage = Storage(test_db)
    yield storage
    storage.close()


@pytest.fixture
def make_orchestrator(storage: Storage, llm_settings: LLMSettings):
    """Factory for orchestrators over the test database with a fixed clock."""

    def _make(policy=None, settings: Optional[LLMSettings] = None, **kwargs):
        return GenerationOrchestrator(
            storage=storage,
            generator=ArticleGenerator(settings or llm_settings),
            policy=policy or ExhaustivePolicy(),
            console=Mock(),
            clock=lambda: FIXED_NOW,
            **kwargs,
        )

    return _make


def seed_website(storage: Storage, name: str = "Trail Gear", **kwargs) -> str:
    """Add an auto-generating website."""
    kwargs.setdefault("domain", f"{name.lower().replace(' ', '')}.example.com")
    kwargs.setdefault("auto_generate_enabled", True)
    kwargs.setdefault("max_articles_per_day", 5)
    return storage.add_website(name, **kwargs)

"""Unit tests for the article generator - prompt, parsing and provider errors."""

import json
from unittest.mock import patch

import pytest

from conftest import article_payload, make_llm_response
from contenthub_daemon.errors import (
    ConfigurationError,
    GenerationParseError,
    GenerationProviderError,
    GenerationTimeoutError,
)
from contenthub_daemon.generator import (
    ArticleGenerator,
    GenerationRequest,
    LLMSettings,
    parse_article_payload,
)


def test_parse_fenced_json_block() -> None:
    fields = parse_article_payload(article_payload(title="  Padded Title  "))

    assert fields["title"] == "Padded Title"
    assert fields["seoTitle"].startswith("Best Hiking Boots")
    assert set(fields) == {"title", "content", "seoTitle", "seoDescription"}


def test_parse_bare_json_without_fence() -> None:
    text = json.dumps(
        {"title": "T", "content": "C", "seoTitle": "ST", "seoDescription": "SD"}
    )
    assert parse_article_payload(text)["seoDescription"] == "SD"


def test_parse_missing_field_keeps_raw_payload() -> None:
    text = article_payload(omit=("seoDescription",))

    with pytest.raises(GenerationParseError) as exc_info:
        parse_article_payload(text)

    assert "seoDescription" in exc_info.value.message
    assert exc_info.value.raw_payload == text
    assert exc_info.value.kind == "parse"


def test_parse_blank_field_counts_as_missing() -> None:
    with pytest.raises(GenerationParseError, match="title"):
        parse_article_payload(article_payload(title="   "))


def test_parse_rejects_non_json() -> None:
    with pytest.raises(GenerationParseError):
        parse_article_payload("Sorry, I cannot write that article.")
    with pytest.raises(GenerationParseError):
        parse_article_payload("```json\n[1, 2, 3]\n```")


def test_generate_success_reports_tokens(llm_settings: LLMSettings) -> None:
    generator = ArticleGenerator(llm_settings)

    with patch("litellm.completion") as mock_completion:
        mock_completion.return_value = make_llm_response(article_payload(), total_tokens=1830)
        result = generator.generate(GenerationRequest(keyword="hiking boots"))

    assert result.success
    assert result.error is None
    assert result.article.title == "Best Hiking Boots for Beginners"
    assert result.article.tokens_used == 1830

    kwargs = mock_completion.call_args.kwargs
    assert kwargs["model"] == llm_settings.model
    assert kwargs["timeout"] == 30
    assert kwargs["temperature"] == 0.7
    assert kwargs["max_tokens"] == 4000
    assert "hiking boots" in kwargs["messages"][0]["content"]


def test_generate_without_usage_defaults_tokens_to_zero(llm_settings: LLMSettings) -> None:
    generator = ArticleGenerator(llm_settings)

    with patch("litellm.completion") as mock_completion:
        mock_completion.return_value = make_llm_response(article_payload(), total_tokens=None)
        result = generator.generate(GenerationRequest(keyword="hiking boots"))

    assert result.success
    assert result.article.tokens_used == 0


def test_generate_provider_error(llm_settings: LLMSettings) -> None:
    generator = ArticleGenerator(llm_settings)

    with patch("litellm.completion", side_effect=Exception("401 Unauthorized")):
        result = generator.generate(GenerationRequest(keyword="hiking boots"))

    assert not result.success
    assert isinstance(result.error, GenerationProviderError)
    assert result.error.kind == "provider"
    assert "401 Unauthorized" in result.error.message


def test_generate_timeout_is_a_provider_error(llm_settings: LLMSettings) -> None:
    generator = ArticleGenerator(llm_settings)

    with patch("litellm.completion", side_effect=TimeoutError("read timed out")):
        result = generator.generate(GenerationRequest(keyword="hiking boots"))

    assert isinstance(result.error, GenerationTimeoutError)
    assert isinstance(result.error, GenerationProviderError)
    assert result.error.kind == "timeout"
    assert "30s" in result.error.message


def test_generate_empty_content_is_parse_error(llm_settings: LLMSettings) -> None:
    generator = ArticleGenerator(llm_settings)

    with patch("litellm.completion", return_value=make_llm_response("")):
        result = generator.generate(GenerationRequest(keyword="hiking boots"))

    assert isinstance(result.error, GenerationParseError)


def test_prompt_includes_seo_data_and_website() -> None:
    generator = ArticleGenerator(LLMSettings(provider="openai", model="gpt-4o-mini", api_key="k"))

    prompt = generator.build_prompt(
        GenerationRequest(
            keyword="hiking boots",
            search_volume=12000,
            difficulty=35,
            website_name="Trail Gear",
            website_domain="trailgear.example.com",
        )
    )

    assert 'Target Keyword: "hiking boots"' in prompt
    assert "Search Volume: 12,000/month" in prompt
    assert "Difficulty: 35/100" in prompt
    assert "Competition: Unknown" in prompt
    assert "Website Name: Trail Gear" in prompt
    assert "Description: A helpful online tool" in prompt
    assert '"seoDescription"' in prompt


def test_prompt_without_search_volume_skips_seo_section() -> None:
    generator = ArticleGenerator(LLMSettings(provider="openai", model="gpt-4o-mini", api_key="k"))

    prompt = generator.build_prompt(GenerationRequest(keyword="hiking boots", difficulty=50))

    assert "Keyword SEO Data" not in prompt
    assert "Website Information" not in prompt


def test_check_configuration_requires_credentials() -> None:
    with pytest.raises(ConfigurationError, match="API key"):
        ArticleGenerator(LLMSettings(provider="openrouter", model="m")).check_configuration()

    # Unexpanded env: reference means the variable was not set
    with pytest.raises(ConfigurationError):
        ArticleGenerator(
            LLMSettings(provider="openrouter", model="m", api_key="env:OPENROUTER_API_KEY")
        ).check_configuration()

    with pytest.raises(ConfigurationError, match="model"):
        ArticleGenerator(LLMSettings(provider="openai", model="", api_key="k")).check_configuration()


def test_check_configuration_ollama_needs_api_base_not_key() -> None:
    with pytest.raises(ConfigurationError, match="api_base"):
        ArticleGenerator(LLMSettings(provider="ollama", model="ollama/llama3")).check_configuration()

    ArticleGenerator(
        LLMSettings(provider="ollama", model="ollama/llama3", api_base="http://localhost:11434")
    ).check_configuration()

"""Simple LLM configuration validator."""

import asyncio

import litellm

from .errors import ConfigurationError
from .generator import ArticleGenerator, LLMSettings


def validate_llm_config(settings: LLMSettings) -> None:
    """Validate LLM configuration can connect to the provider.

    Raises:
        ConfigurationError: If model or credentials are missing
        Exception: If LLM connection fails
    """
    ArticleGenerator(settings).check_configuration()

    model_params = {"model": settings.model}
    if settings.api_key:
        model_params["api_key"] = settings.api_key
    if settings.api_base:
        model_params["api_base"] = settings.api_base

    # Use LiteLLM's health check
    result = asyncio.run(litellm.ahealth_check(model_params))
    if isinstance(result, dict) and result.get("error"):
        raise ConfigurationError(f"LLM health check failed: {result['error']}")

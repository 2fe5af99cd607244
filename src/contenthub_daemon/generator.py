"""AI article generation using LLM."""

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Optional

import litellm
from litellm import completion_cost

from .errors import (
    ConfigurationError,
    GenerationError,
    GenerationParseError,
    GenerationProviderError,
    GenerationTimeoutError,
)
from .models import KeywordPlan, Website
from .observability import log as obs_log

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "content", "seoTitle", "seoDescription")
_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


@dataclass
class LLMSettings:
    """Provider settings handed to the generator at construction."""

    provider: str
    model: str
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 4000
    timeout_seconds: int = 120


@dataclass
class GenerationRequest:
    """Everything the prompt needs about one keyword."""

    keyword: str
    search_volume: Optional[int] = None
    difficulty: Optional[int] = None
    competition: Optional[str] = None
    website_name: Optional[str] = None
    website_domain: Optional[str] = None
    website_description: Optional[str] = None

    @classmethod
    def from_plan(cls, plan: KeywordPlan, website: Optional[Website] = None):
        return cls(
            keyword=plan.keyword,
            search_volume=plan.search_volume,
            difficulty=plan.difficulty,
            competition=plan.competition,
            website_name=website.name if website else None,
            website_domain=website.domain if website else None,
            website_description=website.description if website else None,
        )


@dataclass
class GeneratedArticle:
    title: str
    content: str
    seo_title: str
    seo_description: str
    tokens_used: int = 0


@dataclass
class GenerationResult:
    """Either a generated article or the error that prevented it."""

    article: Optional[GeneratedArticle] = None
    error: Optional[GenerationError] = None

    @property
    def success(self) -> bool:
        return self.article is not None and self.error is None

    @classmethod
    def ok(cls, article: GeneratedArticle) -> "GenerationResult":
        return cls(article=article)

    @classmethod
    def failed(cls, error: GenerationError) -> "GenerationResult":
        return cls(error=error)


def parse_article_payload(text: str) -> dict[str, str]:
    """Extract the article fields from a model response.

    Accepts a fenced ```json block anywhere in the text, or bare JSON.

    Raises:
        GenerationParseError: If no JSON object can be read or a required
            field is missing or blank. Carries the raw text.
    """
    match = _FENCED_JSON.search(text)
    candidate = match.group(1) if match else text

    try:
        parsed = json.loads(candidate.strip())
    except json.JSONDecodeError:
        # Last resort: outermost braces in free text
        start, end = candidate.find("{"), candidate.rfind("}")
        if start == -1 or end <= start:
            raise GenerationParseError(
                "AI response did not contain a JSON object", raw_payload=text
            )
        try:
            parsed = json.loads(candidate[start : end + 1])
        except json.JSONDecodeError as e:
            raise GenerationParseError(
                f"AI response JSON could not be parsed: {e}", raw_payload=text
            )

    if not isinstance(parsed, dict):
        raise GenerationParseError(
            "AI response JSON was not an object", raw_payload=text
        )

    fields = {}
    missing = []
    for name in REQUIRED_FIELDS:
        value = parsed.get(name)
        if not isinstance(value, str) or not value.strip():
            missing.append(name)
        else:
            fields[name] = value.strip()

    if missing:
        raise GenerationParseError(
            f"AI response missing required fields: {', '.join(missing)}",
            raw_payload=text,
        )

    return fields


def _total_tokens(response: Any) -> int:
    usage = getattr(response, "usage", None)
    if usage is None:
        return 0
    total = getattr(usage, "total_tokens", None)
    return total if isinstance(total, int) else 0


class ArticleGenerator:
    """Writes SEO articles for keywords through LiteLLM."""

    def __init__(self, settings: LLMSettings):
        self.settings = settings
        self.model = settings.model
        self.provider = (settings.provider or "openai").lower()
        self.temperature = settings.temperature

        # Drop unsupported params instead of erroring
        litellm.drop_params = True

        logger.info(f"ArticleGenerator initialized with model: {self.model}")

    def check_configuration(self) -> None:
        """Raise ConfigurationError if the provider cannot be called at all."""
        if not self.model:
            raise ConfigurationError("AI model not configured. Set [llm] model")
        if self.provider == "ollama":
            if not self.settings.api_base:
                raise ConfigurationError(
                    "Ollama provider requires 'api_base' in config (e.g., 'http://localhost:11434')"
                )
            return
        api_key = self.settings.api_key or ""
        if not api_key or api_key.startswith("env:"):
            raise ConfigurationError(
                f"AI API key not configured for provider '{self.provider}'. "
                f"Set [llm] api_key or the environment variable it points to"
            )

    def build_prompt(self, request: GenerationRequest) -> str:
        """Build the article-writing prompt for one keyword."""
        seo_data = ""
        if request.search_volume:
            difficulty = (
                f"{request.difficulty}/100" if request.difficulty is not None else "Unknown"
            )
            seo_data = (
                "\nKeyword SEO Data:\n"
                f"- Search Volume: {request.search_volume:,}/month\n"
                f"- Difficulty: {difficulty}\n"
                f"- Competition: {request.competition or 'Unknown'}"
            )

        website_section = ""
        if request.website_name:
            website_section = (
                "\nWebsite Information:\n"
                f"- Website Name: {request.website_name}\n"
                f"- Domain: {request.website_domain}\n"
                f"- Description: {request.website_description or 'A helpful online tool'}\n\n"
                "Please naturally recommend or mention this website as a solution when "
                "relevant to the topic. Include the website name and emphasize its "
                "benefits to users."
            )

        return f"""You are a professional SEO content writer with expertise in creating high-quality, EEAT-optimized articles. Create a comprehensive article targeting the following keyword.

Target Keyword: "{request.keyword}"{seo_data}{website_section}

Return the content in the following JSON format:

```json
{{
  "title": "Article title (engaging, SEO-friendly, includes target keyword)",
  "content": "Complete article content in Markdown format (2500-4000 words)",
  "seoTitle": "SEO title (50-60 characters, includes target keyword)",
  "seoDescription": "Meta description (150-160 characters, compelling click-through)"
}}
```

CONTENT REQUIREMENTS:

**EEAT Optimization:**
1. **Experience**: Write from a knowledgeable perspective, include practical tips and real-world applications
2. **Expertise**: Demonstrate deep subject knowledge, use technical accuracy, cite best practices
3. **Authoritativeness**: Structure content professionally, use confident language, provide comprehensive coverage
4. **Trustworthiness**: Include disclaimers when appropriate, acknowledge limitations, provide balanced viewpoints

**SEO Optimization:**
1. Use target keyword naturally 4-6 times throughout the article
2. Include semantic keywords and related terms
3. Structure with proper heading hierarchy (##, ###, ####)
4. Include bulleted and numbered lists for readability
5. Write compelling meta descriptions that encourage clicks
6. Use internal linking opportunities (mention related topics)

**Content Structure:**
1. **Introduction** (150-200 words): Hook, keyword mention, article overview
2. **Main Content** (2000-3000 words): 4-6 detailed sections with practical information
3. **FAQ Section** (300-500 words): Address common questions with schema-friendly format
4. **Conclusion** (150-200 words): Summarize key points, include call-to-action

**Writing Style:**
- Write in English with clear, accessible language
- Use active voice and engaging tone
- Include practical examples and actionable advice
- Format with proper Markdown syntax
- Bold important terms and concepts

Return only valid JSON format without any additional text."""

    def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate one article.

        Never raises for provider or payload problems: those come back as a
        failed GenerationResult so the caller can record them.
        """
        prompt = self.build_prompt(request)

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.settings.max_tokens,
            "timeout": self.settings.timeout_seconds,
        }
        if self.settings.api_key:
            kwargs["api_key"] = self.settings.api_key
        if self.settings.api_base:
            kwargs["api_base"] = self.settings.api_base
        if self.provider == "openrouter":
            kwargs["extra_headers"] = {"X-Title": "Content Hub - AI Article Generator"}

        logger.debug(f"Calling {self.model} for keyword '{request.keyword}'")
        start_time = time.time()

        try:
            response = litellm.completion(**kwargs)
        except (litellm.Timeout, TimeoutError) as e:
            duration_ms = int((time.time() - start_time) * 1000)
            self._log_call("timeout", duration_ms, error=str(e))
            return GenerationResult.failed(
                GenerationTimeoutError(
                    f"AI provider timed out after {self.settings.timeout_seconds}s: {e}"
                )
            )
        except Exception as e:
            duration_ms = int((time.time() - start_time) * 1000)
            self._log_call("error", duration_ms, error=str(e))
            return GenerationResult.failed(
                GenerationProviderError(f"AI provider error: {e}")
            )

        duration_ms = int((time.time() - start_time) * 1000)
        tokens_used = _total_tokens(response)

        try:
            cost_usd = completion_cost(response)
        except Exception:
            cost_usd = 0.0

        self._log_call("success", duration_ms, tokens=tokens_used, cost_usd=cost_usd)

        choices = getattr(response, "choices", None)
        if not choices:
            return GenerationResult.failed(
                GenerationParseError("AI provider returned no choices", raw_payload=None)
            )

        text = choices[0].message.content
        if not text or not str(text).strip():
            return GenerationResult.failed(
                GenerationParseError("AI provider returned empty content", raw_payload=text)
            )

        try:
            fields = parse_article_payload(text)
        except GenerationParseError as e:
            return GenerationResult.failed(e)

        return GenerationResult.ok(
            GeneratedArticle(
                title=fields["title"],
                content=fields["content"],
                seo_title=fields["seoTitle"],
                seo_description=fields["seoDescription"],
                tokens_used=tokens_used,
            )
        )

    def _log_call(self, status: str, duration_ms: int, **metadata: Any) -> None:
        obs_log(
            "llm.call",
            action="generate_article",
            model=self.model,
            status=status,
            duration_ms=duration_ms,
            **metadata,
        )
